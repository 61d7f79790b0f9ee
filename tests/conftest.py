import pytest
import httpx

# Import Base + all models so metadata is complete
import app.models  # noqa: F401
from app.core.config import Settings
from app.main import create_app
from app.models.base import Base
from app.services.auth import Principal

from tests.helpers import make_settings


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
async def media_app(settings):
    """
    App wired to a throwaway SQLite file and upload directory.
    Schema is created directly from metadata (migrations target Postgres).
    """
    application = create_app(settings)
    async with application.state.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield application
    finally:
        await application.state.http.aclose()
        await application.state.engine.dispose()


@pytest.fixture
async def client(media_app):
    transport = httpx.ASGITransport(app=media_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_session(media_app):
    async with media_app.state.sessionmaker() as session:
        yield session


@pytest.fixture
def store(media_app):
    return media_app.state.asset_store


@pytest.fixture
def principal() -> Principal:
    return Principal(id="tester", role="admin")
