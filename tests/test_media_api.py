from contextlib import asynccontextmanager
from pathlib import Path

import httpx
import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

import app.main as main_module
from app.core.security import hash_api_key
from app.main import create_app
from app.models.base import Base

from tests.helpers import jpeg_bytes, make_settings


MB = 1024 * 1024


def _image(size: int = 2 * MB, name: str = "launch.jpg", content_type: str = "image/jpeg"):
    return {"image": (name, jpeg_bytes(size), content_type)}


def _upload_files(settings):
    return sorted(p.name for p in Path(settings.local_media_path).iterdir())


async def _create(client, collection="gallery", data=None, files=None):
    if data is None:
        data = {"title": "Launch", "category": "events", "year": "2024"}
    return await client.post(f"/v1/{collection}", data=data, files=files if files is not None else _image())


async def test_gallery_lifecycle(client, settings):
    r = await _create(client)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "Image uploaded successfully"
    item = body["data"]
    assert item["category"] == "events"
    assert item["year"] == "2024"
    assert item["section"] == "gallery"
    assert item["asset_reference"]["backend"] == "local"
    key = item["asset_reference"]["key"]
    assert item["image_url"] == f"http://test/uploads/{key}"

    r = await client.get(f"/uploads/{key}")
    assert r.status_code == 200
    assert len(r.content) == 2 * MB

    r = await _create(client, files=_image(6 * MB))
    assert r.status_code == 400
    assert r.json()["message"] == "File size too large. Max 5MB allowed."

    r = await _create(client, data={"title": "Launch", "category": "invalid", "year": "2024"})
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["code"] == "validation_error"
    assert "events, movies, celebrations, awards, behind-the-scenes, other" in body["message"]
    assert body["details"][0]["field"] == "category"

    # rejected requests never leave files behind
    assert _upload_files(settings) == [key]

    r = await client.delete(f"/v1/gallery/{item['id']}")
    assert r.status_code == 200
    assert r.json()["data"] == {"id": item["id"], "asset_deleted": True}

    r = await client.get("/v1/gallery")
    assert r.status_code == 200
    assert all(i["id"] != item["id"] for i in r.json()["data"])

    r = await client.get(f"/uploads/{key}")
    assert r.status_code == 404


async def test_create_requires_image(client):
    r = await client.post("/v1/gallery", data={"title": "Launch", "category": "events"})
    assert r.status_code == 400
    assert r.json()["message"] == "Image is required"


async def test_create_rejects_non_image(client, settings):
    r = await _create(client, files={"image": ("notes.txt", b"hello", "text/plain")})
    assert r.status_code == 400
    assert r.json()["message"].startswith("Only image files")
    assert _upload_files(settings) == []


async def test_list_pagination_and_filters(client):
    for i in range(3):
        r = await _create(client, data={"title": f"Event {i}", "category": "events"})
        assert r.status_code == 201
    r = await _create(client, data={"title": "Trophy", "category": "awards", "section": "home"})
    assert r.status_code == 201

    r = await client.get("/v1/gallery", params={"page": 2, "limit": 3})
    body = r.json()
    assert (body["total"], body["pages"], body["page"], body["limit"]) == (4, 2, 2, 3)
    assert [i["title"] for i in body["data"]] == ["Event 0"]

    r = await client.get("/v1/gallery", params={"category": "awards"})
    assert [i["title"] for i in r.json()["data"]] == ["Trophy"]

    r = await client.get("/v1/gallery", params={"search": "event"})
    assert r.json()["total"] == 3


@pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 101}, {"page": 0}, {"page": "x"}])
async def test_list_rejects_bad_paging(client, params):
    r = await client.get("/v1/gallery", params=params)
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"


async def test_update_partial_and_replace_image(client, settings):
    created = (await _create(client)).json()["data"]

    r = await client.put(f"/v1/gallery/{created['id']}", data={"title": "Renamed"})
    assert r.status_code == 200
    updated = r.json()["data"]
    assert r.json()["message"] == "Gallery item updated"
    assert updated["title"] == "Renamed"
    assert updated["category"] == "events"
    assert updated["asset_reference"]["key"] == created["asset_reference"]["key"]

    r = await client.put(
        f"/v1/gallery/{created['id']}",
        data={"section": "home"},
        files=_image(1024, name="new.png", content_type="image/png"),
    )
    assert r.status_code == 200
    replaced = r.json()["data"]
    new_key = replaced["asset_reference"]["key"]
    assert new_key != created["asset_reference"]["key"]
    assert new_key.endswith(".png")
    assert replaced["section"] == "home"
    assert replaced["title"] == "Renamed"
    assert _upload_files(settings) == [new_key]


async def test_update_with_invalid_metadata_stores_nothing(client, settings):
    created = (await _create(client)).json()["data"]

    r = await client.put(
        f"/v1/gallery/{created['id']}",
        data={"year": "1999"},
        files=_image(1024),
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Year must be 2000 or later"
    assert _upload_files(settings) == [created["asset_reference"]["key"]]


async def test_unknown_ids_are_404(client):
    r = await client.put("/v1/gallery/gal_missing", data={"title": "x"})
    assert r.status_code == 404
    assert r.json()["message"] == "Gallery item not found"

    r = await client.delete("/v1/projects/prj_missing")
    assert r.status_code == 404
    assert r.json()["code"] == "not_found"


async def test_delete_all(client, settings):
    for _ in range(2):
        await _create(client)
    await _create(client, data={"title": "Trophy", "category": "awards"})

    r = await client.delete("/v1/gallery", params={"category": "events"})
    assert r.status_code == 200
    assert r.json()["data"]["count"] == 2

    r = await client.delete("/v1/gallery")
    assert r.json()["data"]["count"] == 1
    assert (await client.get("/v1/gallery")).json()["total"] == 0
    assert _upload_files(settings) == []


async def test_cleanup_endpoint(client, settings):
    created = (await _create(client)).json()["data"]
    await _create(client)
    (Path(settings.local_media_path) / created["asset_reference"]["key"]).unlink()

    r = await client.post("/v1/gallery/cleanup")
    assert r.status_code == 200
    assert r.json()["data"]["count"] == 1
    assert (await client.get("/v1/gallery")).json()["total"] == 1


async def test_projects_defaults_and_completed(client):
    r = await _create(client, "projects", data={"title": "Pilot", "completed": "true"})
    assert r.status_code == 201, r.text
    project = r.json()["data"]
    assert project["id"].startswith("prj_")
    assert project["kind"] == "project"
    assert project["category"] == "other"
    assert project["section"] == "Banner"
    assert project["completed"] is True

    r = await client.put(f"/v1/projects/{project['id']}", data={"section": "Featured", "completed": "false"})
    assert r.status_code == 200
    assert r.json()["message"] == "Project item updated"
    assert r.json()["data"]["completed"] is False

    # the collections do not see each other's records
    assert (await client.get("/v1/gallery")).json()["total"] == 0
    r = await client.get(f"/v1/gallery/{project['id']}")
    assert r.status_code in (404, 405)


async def test_gallery_rejects_completed(client, settings):
    r = await _create(client, data={"title": "Launch", "category": "events", "completed": "true"})
    assert r.status_code == 400
    assert r.json()["message"] == "completed applies to projects only"
    assert _upload_files(settings) == []


@asynccontextmanager
async def _serve(settings):
    application = create_app(settings)
    async with application.state.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    transport = httpx.ASGITransport(app=application)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        await application.state.http.aclose()
        await application.state.engine.dispose()


@pytest.fixture
async def api_key_client(tmp_path):
    settings = make_settings(
        tmp_path,
        auth_mode="api_key",
        api_key_pepper="pepper",
        admin_api_key_hash=hash_api_key("mk_test_secret", "pepper"),
    )
    async with _serve(settings) as ac:
        yield ac


async def test_writes_require_api_key(api_key_client):
    r = await _create(api_key_client)
    assert r.status_code == 401
    assert r.json()["code"] == "unauthenticated"

    r = await api_key_client.post(
        "/v1/gallery",
        data={"title": "Launch", "category": "events"},
        files=_image(1024),
        headers={"X-API-Key": "mk_wrong"},
    )
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid API key"

    r = await api_key_client.post(
        "/v1/gallery",
        data={"title": "Launch", "category": "events"},
        files=_image(1024),
        headers={"X-API-Key": "mk_test_secret"},
    )
    assert r.status_code == 201
    assert r.json()["data"]["title"] == "Launch"

    r = await api_key_client.delete(f"/v1/gallery/{r.json()['data']['id']}")
    assert r.status_code == 401

    # reads stay public
    r = await api_key_client.get("/v1/gallery")
    assert r.status_code == 200
    assert r.json()["total"] == 1


async def test_unmatched_requests_use_error_envelope(client):
    r = await client.get("/v1/nope")
    assert r.status_code == 404
    assert r.json() == {"success": False, "code": "not_found", "message": "Route not found", "details": []}

    r = await client.patch("/v1/gallery")
    assert r.status_code == 405
    assert r.json()["code"] == "method_not_allowed"
    assert r.json()["success"] is False
    assert "GET" in r.headers["allow"]

    r = await client.get("/uploads/missing.jpg")
    assert r.status_code == 404
    assert r.json()["code"] == "not_found"


async def _failing_commit(self):
    raise OperationalError("COMMIT", {}, Exception("database is gone"))


@pytest.mark.parametrize("debug_errors", [False, True])
async def test_failed_save_is_500_and_leaves_no_upload(tmp_path, monkeypatch, debug_errors):
    settings = make_settings(tmp_path, debug_errors=debug_errors)
    async with _serve(settings) as ac:
        monkeypatch.setattr(AsyncSession, "commit", _failing_commit)
        r = await _create(ac)
        monkeypatch.undo()

    assert r.status_code == 500
    body = r.json()
    assert body["success"] is False
    assert body["code"] == "persistence_error"
    assert body["message"] == "Failed to save gallery item"
    assert body["retryable"] is False
    assert _upload_files(settings) == []

    if debug_errors:
        assert "PersistenceError" in body["traceback"]
    else:
        assert "traceback" not in body


async def test_importing_main_builds_no_app(tmp_path, monkeypatch):
    assert not hasattr(main_module, "app")

    monkeypatch.setattr(main_module, "default_settings", make_settings(tmp_path))
    application = main_module.build_app()
    try:
        assert application.state.settings.local_media_path == str(tmp_path / "uploads")
    finally:
        await application.state.http.aclose()
        await application.state.engine.dispose()
