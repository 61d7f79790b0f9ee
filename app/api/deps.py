from fastapi import Request

from app.core.config import Settings
from app.services.storage import AssetStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_asset_store(request: Request) -> AssetStore:
    return request.app.state.asset_store
