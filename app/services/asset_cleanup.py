from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import utcnow
from app.models.outbox import OutboxEvent
from app.services.errors import StorageError
from app.services.retry import next_retry_at
from app.services.storage import AssetStore


log = logging.getLogger(__name__)

ASSET_DELETE_EVENT = "asset.delete"


async def schedule_asset_cleanup(db: AsyncSession, *, backend: str, key: str, reason: str, error: str | None = None) -> None:
    """Queue an asset for a later delete attempt by the worker. Never raises."""
    try:
        db.add(
            OutboxEvent(
                event_type=ASSET_DELETE_EVENT,
                payload={"backend": backend, "key": key, "reason": reason},
                status="pending",
                last_error=error,
            )
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        log.exception("asset cleanup: could not queue %s/%s for retry", backend, key)


async def best_effort_delete(
    store: AssetStore,
    key: str,
    *,
    reason: str,
    db: AsyncSession | None = None,
) -> bool:
    """
    Try to delete one asset; a failure is logged (and queued when ``db`` is
    given) but never raised. Returns True when the asset is gone.
    """
    try:
        outcome = await store.delete(key)
    except StorageError as e:
        log.warning("asset cleanup (%s): delete of %s/%s failed: %s", reason, store.backend, key, e.message)
        if db is not None:
            await schedule_asset_cleanup(db, backend=store.backend, key=key, reason=reason, error=e.message)
        return False

    if outcome == "not_found":
        log.info("asset cleanup (%s): %s/%s already gone", reason, store.backend, key)
    return True


async def claim_due_cleanup_events(db: AsyncSession, *, limit: int = 100, lease_seconds: int = 300) -> list[str]:
    """
    Pick pending asset deletes that are due and push their next_retry_at
    past the lease so the next poll does not enqueue them twice.
    """
    now = utcnow()
    stmt = (
        select(OutboxEvent.id)
        .where(
            OutboxEvent.event_type == ASSET_DELETE_EVENT,
            OutboxEvent.status == "pending",
            (OutboxEvent.next_retry_at.is_(None)) | (OutboxEvent.next_retry_at <= now),
        )
        .order_by(OutboxEvent.created_at.asc())
        .limit(limit)
    )
    ids = list((await db.execute(stmt)).scalars().all())
    if ids:
        await db.execute(
            update(OutboxEvent)
            .where(OutboxEvent.id.in_(ids))
            .values(next_retry_at=now + timedelta(seconds=lease_seconds))
        )
    await db.commit()
    return ids


async def process_asset_cleanup(
    db: AsyncSession,
    event_id: str,
    *,
    store_for: Callable[[str], AssetStore],
    max_attempts: int,
) -> str | None:
    """
    Retry one queued asset delete. Returns the resulting status, or None
    when the event is missing or no longer pending.
    """
    ev = (await db.execute(select(OutboxEvent).where(OutboxEvent.id == event_id))).scalar_one_or_none()
    if not ev or ev.status != "pending":
        return None

    backend = ev.payload.get("backend", "")
    key = ev.payload.get("key", "")
    ev.attempts += 1

    try:
        await store_for(backend).delete(key)
    except (StorageError, ValueError) as e:
        message = e.message if isinstance(e, StorageError) else str(e)
        ev.last_error = message
        if ev.attempts >= max_attempts:
            ev.status = "dead"
            ev.processed_at = utcnow()
            log.error("asset cleanup: giving up on %s/%s after %d attempts", backend, key, ev.attempts)
        else:
            ev.next_retry_at = next_retry_at(ev.attempts)
            log.warning("asset cleanup: retry %d for %s/%s failed: %s", ev.attempts, backend, key, message)
    else:
        ev.status = "done"
        ev.last_error = None
        ev.processed_at = utcnow()
        log.info("asset cleanup: %s/%s removed on attempt %d", backend, key, ev.attempts)

    await db.commit()
    return ev.status
