import asyncio
import logging

from app.core.config import settings
from app.core.db import build_engine, build_sessionmaker
from app.services.asset_cleanup import claim_due_cleanup_events
from worker.celery_app import celery


log = logging.getLogger(__name__)

POLL_SECONDS = 15
BATCH_SIZE = 100


async def _tick(Session) -> int:
    async with Session() as db:
        ids = await claim_due_cleanup_events(db, limit=BATCH_SIZE)

    if ids:
        log.info("tick: enqueueing %d asset cleanups", len(ids))
    for event_id in ids:
        celery.send_task("worker.tasks.retry_asset_cleanup", args=[event_id], queue="asset-cleanup")
    return len(ids)


async def main():
    celery.connection().ensure_connection(max_retries=3)

    logging.basicConfig(level=settings.log_level)
    log.info("dispatcher: started")
    engine = build_engine(settings.database_url)
    Session = build_sessionmaker(engine)
    try:
        while True:
            try:
                await _tick(Session)
            except Exception:
                log.exception("dispatcher: tick crashed")
            await asyncio.sleep(POLL_SECONDS)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
