from datetime import datetime

from pydantic import BaseModel

from app.models.media_record import MediaRecord


class AssetReferenceOut(BaseModel):
    backend: str
    key: str
    url: str


class MediaRecordOut(BaseModel):
    id: str
    kind: str
    title: str
    description: str
    category: str
    section: str
    year: str
    completed: bool | None = None
    image_url: str
    asset_reference: AssetReferenceOut
    content_type: str
    bytes: int
    width: int | None = None
    height: int | None = None
    format: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, r: MediaRecord) -> "MediaRecordOut":
        return cls(
            id=r.id,
            kind=r.kind,
            title=r.title,
            description=r.description,
            category=r.category,
            section=r.section,
            year=r.year,
            completed=r.completed,
            image_url=r.asset_url,
            asset_reference=AssetReferenceOut(backend=r.asset_backend, key=r.asset_key, url=r.asset_url),
            content_type=r.content_type,
            bytes=r.bytes,
            width=r.width,
            height=r.height,
            format=r.format,
            created_at=r.created_at,
            updated_at=r.updated_at,
        )


class MediaRecordResponse(BaseModel):
    success: bool = True
    message: str
    data: MediaRecordOut


class MediaPageResponse(BaseModel):
    success: bool = True
    data: list[MediaRecordOut]
    total: int
    pages: int
    page: int
    limit: int


class DeleteOut(BaseModel):
    id: str
    asset_deleted: bool


class DeleteResponse(BaseModel):
    success: bool = True
    message: str
    data: DeleteOut


class CountOut(BaseModel):
    count: int


class CountResponse(BaseModel):
    success: bool = True
    message: str
    data: CountOut
