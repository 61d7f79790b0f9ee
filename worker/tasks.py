import asyncio
import logging

from app.core.config import settings
from app.core.db import build_engine, build_sessionmaker
import app.models  # noqa: F401  # ensures Models are registered
from app.services.asset_cleanup import process_asset_cleanup
from app.services.http_client import MediaHttpClient
from app.services.storage import build_asset_store
from worker.celery_app import celery


log = logging.getLogger(__name__)


async def _retry_asset_cleanup(event_id: str) -> str | None:
    engine = build_engine(settings.database_url)
    Session = build_sessionmaker(engine)
    http = MediaHttpClient(timeout_seconds=settings.http_timeout_seconds)

    try:
        async with Session() as db:
            return await process_asset_cleanup(
                db,
                event_id,
                store_for=lambda backend: build_asset_store(settings, http, backend=backend),
                max_attempts=settings.asset_cleanup_max_attempts,
            )
    finally:
        await http.aclose()
        await engine.dispose()


@celery.task(name="worker.tasks.retry_asset_cleanup")
def retry_asset_cleanup(event_id: str) -> str | None:
    status = asyncio.run(_retry_asset_cleanup(event_id))
    log.info("retry_asset_cleanup %s -> %s", event_id, status)
    return status
