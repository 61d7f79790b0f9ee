from fastapi import APIRouter

from app.api.v1.endpoints.health import router as health_router
from app.api.v1.endpoints.media_items import build_media_router


router = APIRouter(prefix="/v1")
router.include_router(health_router, tags=["health"])
router.include_router(build_media_router("gallery"), prefix="/gallery", tags=["gallery"])
router.include_router(build_media_router("project"), prefix="/projects", tags=["projects"])
