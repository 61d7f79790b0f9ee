from alembic import op
import sqlalchemy as sa

revision = "0001_media_records"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "media_records",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("kind", sa.String(length=20), nullable=False),

        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=False, server_default=""),
        sa.Column("category", sa.String(length=50), nullable=False),
        sa.Column("section", sa.String(length=50), nullable=False),
        sa.Column("year", sa.String(length=4), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=True),

        sa.Column("asset_backend", sa.String(length=20), nullable=False),
        sa.Column("asset_key", sa.String(length=300), nullable=False),
        sa.Column("asset_url", sa.String(length=1000), nullable=False),
        sa.Column("content_type", sa.String(length=100), nullable=False),
        sa.Column("bytes", sa.Integer(), nullable=False),
        sa.Column("width", sa.Integer(), nullable=True),
        sa.Column("height", sa.Integer(), nullable=True),
        sa.Column("format", sa.String(length=20), nullable=True),

        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("updated_by", sa.String(), nullable=True),

        sa.UniqueConstraint("asset_backend", "asset_key", name="uq_media_records_asset"),
    )

    op.create_index("ix_media_records_kind_created_at", "media_records", ["kind", "created_at"])
    op.create_index("ix_media_records_kind_category", "media_records", ["kind", "category"])
    op.create_index("ix_media_records_kind_section", "media_records", ["kind", "section"])
    op.create_index("ix_media_records_kind_year", "media_records", ["kind", "year"])

    op.create_table(
        "outbox",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("event_type", sa.String(length=200), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_outbox_status_next_retry_at", "outbox", ["status", "next_retry_at"])


def downgrade():
    op.drop_index("ix_outbox_status_next_retry_at", table_name="outbox")
    op.drop_table("outbox")
    op.drop_index("ix_media_records_kind_year", table_name="media_records")
    op.drop_index("ix_media_records_kind_section", table_name="media_records")
    op.drop_index("ix_media_records_kind_category", table_name="media_records")
    op.drop_index("ix_media_records_kind_created_at", table_name="media_records")
    op.drop_table("media_records")
