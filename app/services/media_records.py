from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Select, delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.ids import gen_id
from app.models.media_record import MediaRecord
from app.services.asset_cleanup import best_effort_delete, schedule_asset_cleanup
from app.services.auth import Principal
from app.services.errors import NotFound, PersistenceError, ValidationError
from app.services.media_validate import METADATA_FIELDS, merge_patch, normalize_metadata, rules_for
from app.services.storage import AssetStore, StoredAsset


log = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


@dataclass(frozen=True)
class RecordFilters:
    category: str | None = None
    section: str | None = None
    year: str | None = None
    search: str | None = None


@dataclass(frozen=True)
class RecordPage:
    items: list[MediaRecord]
    total: int
    pages: int
    page: int
    limit: int


@dataclass(frozen=True)
class DeleteResult:
    id: str
    asset_deleted: bool


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _apply_filters(stmt: Select, kind: str, filters: RecordFilters | None) -> Select:
    stmt = stmt.where(MediaRecord.kind == kind)
    if not filters:
        return stmt
    if filters.category:
        stmt = stmt.where(MediaRecord.category == filters.category)
    if filters.section:
        stmt = stmt.where(MediaRecord.section == filters.section)
    if filters.year:
        stmt = stmt.where(MediaRecord.year == str(filters.year))
    term = (filters.search or "").strip()
    if term:
        pattern = f"%{_escape_like(term)}%"
        stmt = stmt.where(
            or_(
                MediaRecord.title.ilike(pattern, escape="\\"),
                MediaRecord.description.ilike(pattern, escape="\\"),
            )
        )
    return stmt


async def _release_asset(db: AsyncSession, store: AssetStore, *, backend: str, key: str, reason: str) -> bool:
    if backend == store.backend:
        return await best_effort_delete(store, key, reason=reason, db=db)
    # asset lives on a backend this process is not configured for; let the worker handle it
    log.warning("asset %s/%s is not on the active backend %s; queued for cleanup", backend, key, store.backend)
    await schedule_asset_cleanup(db, backend=backend, key=key, reason=reason)
    return False


async def get_record(db: AsyncSession, kind: str, record_id: str) -> MediaRecord:
    try:
        record = (
            await db.execute(select(MediaRecord).where(MediaRecord.id == record_id, MediaRecord.kind == kind))
        ).scalar_one_or_none()
    except SQLAlchemyError as e:
        log.exception("lookup of %s %s failed", kind, record_id)
        raise PersistenceError(f"Failed to load {kind} item", retryable=True) from e
    if record is None:
        raise NotFound(f"{kind.capitalize()} item not found")
    return record


async def list_records(
    db: AsyncSession,
    kind: str,
    *,
    filters: RecordFilters | None = None,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
) -> RecordPage:
    """
    One page of records, newest first.

    ``pages`` is never below 1 so an empty listing still reports page 1 of 1.
    """
    if page < 1:
        raise ValidationError("page must be 1 or greater")
    if not 1 <= limit <= MAX_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}")

    base = _apply_filters(select(MediaRecord), kind, filters)
    count_stmt = select(func.count()).select_from(base.subquery())
    page_stmt = (
        base.order_by(MediaRecord.created_at.desc(), MediaRecord.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )

    try:
        total = (await db.execute(count_stmt)).scalar_one()
        items = list((await db.execute(page_stmt)).scalars().all())
    except SQLAlchemyError as e:
        log.exception("listing %s failed", kind)
        raise PersistenceError(f"Server error while fetching {kind} items", retryable=True) from e

    pages = max(1, math.ceil(total / limit))
    return RecordPage(items=items, total=total, pages=pages, page=page, limit=limit)


async def create_record(
    db: AsyncSession,
    store: AssetStore,
    *,
    kind: str,
    metadata: dict[str, Any],
    asset: StoredAsset,
    principal: Principal,
) -> MediaRecord:
    """
    Persist a record for an already stored asset.

    If the metadata is rejected or the write fails, the asset is deleted
    (best-effort) before the error propagates.
    """
    rules = rules_for(kind)
    try:
        fields = normalize_metadata(kind, metadata)
    except ValidationError:
        await best_effort_delete(store, asset.key, reason="create.invalid", db=db)
        raise

    record = MediaRecord(
        id=gen_id(rules.id_prefix),
        kind=kind,
        **fields,
        asset_backend=asset.backend,
        asset_key=asset.key,
        asset_url=asset.url,
        content_type=asset.content_type,
        bytes=asset.bytes,
        width=asset.width,
        height=asset.height,
        format=asset.format,
        created_by=principal.id,
        updated_by=principal.id,
    )

    try:
        db.add(record)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        log.exception("create %s failed; removing uploaded asset %s", kind, asset.key)
        await best_effort_delete(store, asset.key, reason="create.rollback", db=db)
        raise PersistenceError(f"Failed to save {kind} item") from e

    log.info("created %s %s (asset %s/%s)", kind, record.id, asset.backend, asset.key)
    return record


async def update_record(
    db: AsyncSession,
    store: AssetStore,
    *,
    kind: str,
    record_id: str,
    patch: dict[str, Any],
    new_asset: StoredAsset | None,
    principal: Principal,
) -> MediaRecord:
    """
    Partial update. Fields that are None keep their stored value.

    With ``new_asset`` the new reference is committed first and the old
    asset deleted afterwards; if the commit fails the new asset is the one
    removed and the record keeps pointing at the old one.
    """
    try:
        record = await get_record(db, kind, record_id)
        current = {f: getattr(record, f) for f in METADATA_FIELDS}
        fields = normalize_metadata(kind, merge_patch(current, patch))
    except (NotFound, ValidationError, PersistenceError):
        if new_asset is not None:
            await best_effort_delete(store, new_asset.key, reason="update.rejected", db=db)
        raise

    old_backend, old_key = record.asset_backend, record.asset_key

    for name, value in fields.items():
        setattr(record, name, value)
    if new_asset is not None:
        record.asset_backend = new_asset.backend
        record.asset_key = new_asset.key
        record.asset_url = new_asset.url
        record.content_type = new_asset.content_type
        record.bytes = new_asset.bytes
        record.width = new_asset.width
        record.height = new_asset.height
        record.format = new_asset.format
    record.updated_by = principal.id

    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        log.exception("update %s %s failed", kind, record_id)
        if new_asset is not None:
            await best_effort_delete(store, new_asset.key, reason="update.rollback", db=db)
        raise PersistenceError(f"Failed to update {kind} item") from e

    if new_asset is not None and (old_backend, old_key) != (new_asset.backend, new_asset.key):
        await _release_asset(db, store, backend=old_backend, key=old_key, reason="update.replaced")
        # a failed outbox write rolls back, which expires the record
        await db.refresh(record)

    log.info("updated %s %s", kind, record_id)
    return record


async def delete_record(db: AsyncSession, store: AssetStore, *, kind: str, record_id: str) -> DeleteResult:
    record = await get_record(db, kind, record_id)

    # asset first, best-effort; a failed remote delete does not block the record delete
    asset_deleted = await _release_asset(
        db, store, backend=record.asset_backend, key=record.asset_key, reason="delete"
    )

    try:
        result = await db.execute(
            delete(MediaRecord).where(MediaRecord.id == record_id, MediaRecord.kind == kind)
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        log.exception("delete %s %s failed", kind, record_id)
        raise PersistenceError(f"Failed to delete {kind} item") from e

    if result.rowcount == 0:
        # a concurrent delete won
        raise NotFound(f"{kind.capitalize()} item not found")

    log.info("deleted %s %s (asset_deleted=%s)", kind, record_id, asset_deleted)
    return DeleteResult(id=record_id, asset_deleted=asset_deleted)


async def delete_all_records(
    db: AsyncSession,
    store: AssetStore,
    *,
    kind: str,
    filters: RecordFilters | None = None,
) -> int:
    try:
        rows = (await db.execute(_apply_filters(select(MediaRecord), kind, filters))).scalars().all()
    except SQLAlchemyError as e:
        log.exception("delete-all %s: lookup failed", kind)
        raise PersistenceError(f"Failed to load {kind} items", retryable=True) from e

    if not rows:
        return 0

    targets = [(r.id, r.asset_backend, r.asset_key) for r in rows]
    failed = 0
    for _, backend, key in targets:
        if not await _release_asset(db, store, backend=backend, key=key, reason="delete_all"):
            failed += 1

    try:
        result = await db.execute(delete(MediaRecord).where(MediaRecord.id.in_([t[0] for t in targets])))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        log.exception("delete-all %s failed", kind)
        raise PersistenceError(f"Failed to delete {kind} items") from e

    log.info("delete-all %s: removed %d records (%d asset deletes failed)", kind, result.rowcount, failed)
    return result.rowcount


async def cleanup_missing_assets(db: AsyncSession, store: AssetStore, *, kind: str) -> int:
    """Remove records whose asset no longer exists on the active backend."""
    try:
        rows = (
            await db.execute(
                select(MediaRecord.id, MediaRecord.asset_key).where(
                    MediaRecord.kind == kind,
                    MediaRecord.asset_backend == store.backend,
                )
            )
        ).all()
    except SQLAlchemyError as e:
        log.exception("cleanup %s: lookup failed", kind)
        raise PersistenceError(f"Failed to load {kind} items", retryable=True) from e

    missing = [record_id for record_id, key in rows if not await store.exists(key)]
    if not missing:
        return 0

    for record_id in missing:
        log.info("cleanup %s: removing %s, asset is missing", kind, record_id)

    try:
        result = await db.execute(delete(MediaRecord).where(MediaRecord.id.in_(missing)))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        log.exception("cleanup %s failed", kind)
        raise PersistenceError(f"Failed to clean up {kind} items") from e
    return result.rowcount
