from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_asset_store, get_settings
from app.core.config import Settings
from app.core.db import get_db
from app.schemas.media import (
    CountOut,
    CountResponse,
    DeleteOut,
    DeleteResponse,
    MediaPageResponse,
    MediaRecordOut,
    MediaRecordResponse,
)
from app.services.auth import Principal, get_principal
from app.services.errors import ValidationError
from app.services.media_records import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    RecordFilters,
    cleanup_missing_assets,
    create_record,
    delete_all_records,
    delete_record,
    get_record,
    list_records,
    update_record,
)
from app.services.media_validate import METADATA_FIELDS, merge_patch, normalize_metadata, rules_for
from app.services.storage import AssetStore
from app.services.uploads import IncomingUpload, store_upload


async def _read_upload(image: UploadFile, settings: Settings) -> IncomingUpload:
    # one byte past the limit is enough to reject oversized files
    data = await image.read(settings.max_upload_bytes + 1)
    return IncomingUpload(
        filename=image.filename or "",
        content_type=image.content_type or "",
        data=data,
    )


def build_media_router(kind: str) -> APIRouter:
    """CRUD routes for one media kind; mounted once per kind."""
    rules_for(kind)
    label = f"{kind.capitalize()} item"
    router = APIRouter()

    def _filters(
        category: str | None = Query(default=None),
        section: str | None = Query(default=None),
        year: str | None = Query(default=None),
        search: str | None = Query(default=None),
    ) -> RecordFilters:
        return RecordFilters(category=category, section=section, year=year, search=search)

    def _metadata(
        title: str | None = Form(default=None),
        description: str | None = Form(default=None),
        category: str | None = Form(default=None),
        section: str | None = Form(default=None),
        year: str | None = Form(default=None),
        completed: bool | None = Form(default=None),
    ) -> dict:
        return {
            "title": title,
            "description": description,
            "category": category,
            "section": section,
            "year": year,
            "completed": completed,
        }

    @router.get("", response_model=MediaPageResponse)
    async def list_items(
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
        filters: RecordFilters = Depends(_filters),
        db: AsyncSession = Depends(get_db),
    ) -> MediaPageResponse:
        result = await list_records(db, kind, filters=filters, page=page, limit=limit)
        return MediaPageResponse(
            data=[MediaRecordOut.from_record(r) for r in result.items],
            total=result.total,
            pages=result.pages,
            page=result.page,
            limit=result.limit,
        )

    @router.post("", status_code=201, response_model=MediaRecordResponse)
    async def create_item(
        image: UploadFile | None = File(default=None),
        metadata: dict = Depends(_metadata),
        principal: Principal = Depends(get_principal),
        settings: Settings = Depends(get_settings),
        store: AssetStore = Depends(get_asset_store),
        db: AsyncSession = Depends(get_db),
    ) -> MediaRecordResponse:
        # all validation happens before the file is stored
        raw = {k: v for k, v in metadata.items() if v is not None}
        normalize_metadata(kind, raw)
        if image is None:
            raise ValidationError("Image is required")
        upload = await _read_upload(image, settings)

        asset = await store_upload(store, upload, prefix=kind, settings=settings)
        record = await create_record(db, store, kind=kind, metadata=raw, asset=asset, principal=principal)
        return MediaRecordResponse(
            message="Image uploaded successfully",
            data=MediaRecordOut.from_record(record),
        )

    @router.post("/cleanup", response_model=CountResponse, dependencies=[Depends(get_principal)])
    async def cleanup_items(
        store: AssetStore = Depends(get_asset_store),
        db: AsyncSession = Depends(get_db),
    ) -> CountResponse:
        removed = await cleanup_missing_assets(db, store, kind=kind)
        return CountResponse(message="Cleanup completed successfully", data=CountOut(count=removed))

    @router.put("/{item_id}", response_model=MediaRecordResponse)
    async def update_item(
        item_id: str,
        image: UploadFile | None = File(default=None),
        metadata: dict = Depends(_metadata),
        principal: Principal = Depends(get_principal),
        settings: Settings = Depends(get_settings),
        store: AssetStore = Depends(get_asset_store),
        db: AsyncSession = Depends(get_db),
    ) -> MediaRecordResponse:
        current = await get_record(db, kind, item_id)
        normalize_metadata(kind, merge_patch({f: getattr(current, f) for f in METADATA_FIELDS}, metadata))

        new_asset = None
        if image is not None:
            upload = await _read_upload(image, settings)
            new_asset = await store_upload(store, upload, prefix=kind, settings=settings)

        record = await update_record(
            db,
            store,
            kind=kind,
            record_id=item_id,
            patch=metadata,
            new_asset=new_asset,
            principal=principal,
        )
        return MediaRecordResponse(message=f"{label} updated", data=MediaRecordOut.from_record(record))

    @router.delete("/{item_id}", response_model=DeleteResponse, dependencies=[Depends(get_principal)])
    async def delete_item(
        item_id: str,
        store: AssetStore = Depends(get_asset_store),
        db: AsyncSession = Depends(get_db),
    ) -> DeleteResponse:
        result = await delete_record(db, store, kind=kind, record_id=item_id)
        return DeleteResponse(
            message=f"{label} deleted successfully",
            data=DeleteOut(id=result.id, asset_deleted=result.asset_deleted),
        )

    @router.delete("", response_model=CountResponse, dependencies=[Depends(get_principal)])
    async def delete_all_items(
        filters: RecordFilters = Depends(_filters),
        store: AssetStore = Depends(get_asset_store),
        db: AsyncSession = Depends(get_db),
    ) -> CountResponse:
        count = await delete_all_records(db, store, kind=kind, filters=filters)
        return CountResponse(message=f"Deleted {count} {kind} items", data=CountOut(count=count))

    return router
