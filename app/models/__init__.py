from app.models.base import Base  # noqa: F401

from app.models.media_record import MediaRecord  # noqa: F401
from app.models.outbox import OutboxEvent  # noqa: F401
