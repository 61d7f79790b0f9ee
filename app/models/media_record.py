from sqlalchemy import Boolean, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, AuditMixin


class MediaRecord(AuditMixin, Base):
    __tablename__ = "media_records"
    __table_args__ = (
        # one live record per stored asset
        UniqueConstraint("asset_backend", "asset_key", name="uq_media_records_asset"),
        Index("ix_media_records_kind_created_at", "kind", "created_at"),
        Index("ix_media_records_kind_category", "kind", "category"),
        Index("ix_media_records_kind_section", "kind", "section"),
        Index("ix_media_records_kind_year", "kind", "year"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)

    # "gallery" | "project"
    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    section: Mapped[str] = mapped_column(String(50), nullable=False)
    year: Mapped[str] = mapped_column(String(4), nullable=False)

    # projects only
    completed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    # "local" | "cloudinary"
    asset_backend: Mapped[str] = mapped_column(String(20), nullable=False)
    # relative file name (local) or provider public id (cloudinary)
    asset_key: Mapped[str] = mapped_column(String(300), nullable=False)
    asset_url: Mapped[str] = mapped_column(String(1000), nullable=False)

    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    format: Mapped[str | None] = mapped_column(String(20), nullable=True)
