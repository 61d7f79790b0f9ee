from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Literal, Protocol, runtime_checkable

from app.core.config import Settings
from app.services.errors import StorageError
from app.services.http_client import HttpResult, MediaHttpClient


log = logging.getLogger(__name__)

DeleteOutcome = Literal["deleted", "not_found"]


@dataclass(frozen=True)
class StoredAsset:
    backend: str
    key: str
    url: str
    content_type: str
    bytes: int
    width: int | None = None
    height: int | None = None
    format: str | None = None


@runtime_checkable
class AssetStore(Protocol):
    """
    Where uploaded images live. Keys are opaque to callers; each store
    only ever deletes keys it produced.
    """

    backend: str

    async def store(self, data: bytes, content_type: str, name: str) -> StoredAsset:
        """Write one new asset. Never overwrites; raises StorageError."""
        ...

    async def delete(self, key: str) -> DeleteOutcome:
        """Remove an asset. Absence is not an error; other failures raise StorageError."""
        ...

    async def exists(self, key: str) -> bool:
        ...

    def url_for(self, key: str) -> str:
        ...


class LocalAssetStore:
    backend = "local"

    def __init__(self, base_dir: str, public_base_url: str, url_prefix: str = "/uploads"):
        self.base = Path(base_dir)
        self.base.mkdir(parents=True, exist_ok=True)
        self._public_base_url = public_base_url.rstrip("/")
        self._url_prefix = "/" + url_prefix.strip("/")

    def resolve_path(self, key: str) -> Path:
        # flat directory: a key is a bare file name
        if not key or PurePosixPath(key).name != key or key in (".", ".."):
            raise StorageError(f"Invalid asset key: {key!r}")
        return self.base / key

    def url_for(self, key: str) -> str:
        return f"{self._public_base_url}{self._url_prefix}/{key}"

    def _write_exclusive(self, path: Path, data: bytes) -> None:
        with open(path, "xb") as fh:
            fh.write(data)

    async def store(self, data: bytes, content_type: str, name: str) -> StoredAsset:
        path = self.resolve_path(name)
        try:
            await asyncio.to_thread(self._write_exclusive, path, data)
        except FileExistsError as e:
            raise StorageError(f"Asset already exists: {name}") from e
        except OSError as e:
            log.exception("local store: write failed for %s", name)
            raise StorageError(f"Failed to write asset: {e}") from e

        log.info("local store: wrote %s (%d bytes)", name, len(data))
        return StoredAsset(
            backend=self.backend,
            key=name,
            url=self.url_for(name),
            content_type=content_type,
            bytes=len(data),
            format=path.suffix.lstrip(".").lower() or None,
        )

    async def delete(self, key: str) -> DeleteOutcome:
        path = self.resolve_path(key)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return "not_found"
        except OSError as e:
            raise StorageError(f"Failed to delete asset {key}: {e}", retryable=True) from e
        log.info("local store: deleted %s", key)
        return "deleted"

    async def exists(self, key: str) -> bool:
        path = self.resolve_path(key)
        return await asyncio.to_thread(path.is_file)


def sign_cloudinary_params(params: dict[str, str], api_secret: str) -> str:
    # sha1 over alphabetically sorted "k=v" pairs joined by "&", secret appended
    to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params) if params[k] != "")
    return hashlib.sha1((to_sign + api_secret).encode("utf-8")).hexdigest()


class CloudinaryAssetStore:
    """
    Cloudinary via its REST API.

    Uploads are normalised to one output format and re-encoded with
    ``q_auto``, which drops embedded metadata.
    """

    backend = "cloudinary"

    def __init__(
        self,
        *,
        http: MediaHttpClient,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        folder: str,
        api_base: str = "https://api.cloudinary.com/v1_1",
        output_format: str = "webp",
    ):
        if not cloud_name or not api_key:
            raise ValueError("Cloudinary cloud name and API key are required")
        self._http = http
        self._cloud_name = cloud_name
        self._api_key = api_key
        self._api_secret = api_secret
        self._folder = folder.strip("/")
        self._base = f"{api_base.rstrip('/')}/{cloud_name}"
        self._output_format = output_format

    def _signed(self, params: dict[str, str]) -> dict[str, str]:
        params = {**params, "timestamp": str(int(time.time()))}
        return {**params, "api_key": self._api_key, "signature": sign_cloudinary_params(params, self._api_secret)}

    def url_for(self, key: str) -> str:
        return f"https://res.cloudinary.com/{self._cloud_name}/image/upload/{key}.{self._output_format}"

    @staticmethod
    def _raise_for(result: HttpResult, action: str) -> None:
        message = result.error_message or "unknown error"
        err = result.detail.get("error")
        if isinstance(err, dict) and err.get("message"):
            message = f"{message}: {err['message']}"
        raise StorageError(f"Cloudinary {action} failed ({message})", retryable=result.retryable)

    async def store(self, data: bytes, content_type: str, name: str) -> StoredAsset:
        public_id = PurePosixPath(name).stem
        form = self._signed(
            {
                "public_id": public_id,
                "folder": self._folder,
                "format": self._output_format,
                "transformation": "q_auto",
                "overwrite": "false",
            }
        )
        result = await self._http.post_form(
            url=f"{self._base}/image/upload",
            data=form,
            files={"file": (name, data, content_type)},
        )
        if not result.ok:
            self._raise_for(result, "upload")

        body = result.detail
        key = body.get("public_id")
        if not key:
            raise StorageError("Cloudinary upload returned no public_id")

        log.info("cloudinary: uploaded %s", key)
        fmt = body.get("format") or self._output_format
        return StoredAsset(
            backend=self.backend,
            key=key,
            url=body.get("secure_url") or self.url_for(key),
            content_type=f"image/{fmt}",
            bytes=int(body.get("bytes") or len(data)),
            width=body.get("width"),
            height=body.get("height"),
            format=fmt,
        )

    async def delete(self, key: str) -> DeleteOutcome:
        form = self._signed({"public_id": key, "invalidate": "true"})
        result = await self._http.post_form(url=f"{self._base}/image/destroy", data=form)
        if not result.ok:
            self._raise_for(result, "destroy")

        outcome = result.detail.get("result")
        if outcome == "ok":
            log.info("cloudinary: deleted %s", key)
            return "deleted"
        if outcome == "not found":
            return "not_found"
        raise StorageError(f"Cloudinary destroy failed ({outcome})")

    async def exists(self, key: str) -> bool:
        result = await self._http.get(
            url=f"{self._base}/resources/image/upload/{key}",
            auth=(self._api_key, self._api_secret),
        )
        if result.ok:
            return True
        if result.status_code == 404:
            return False
        self._raise_for(result, "lookup")
        return False


def build_asset_store(settings: Settings, http: MediaHttpClient, backend: str | None = None) -> AssetStore:
    backend = backend or settings.storage_backend
    if backend == "local":
        return LocalAssetStore(settings.local_media_path, settings.public_base_url)
    if backend == "cloudinary":
        return CloudinaryAssetStore(
            http=http,
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret.get_secret_value(),
            folder=settings.cloudinary_folder,
            api_base=settings.cloudinary_api_base,
            output_format=settings.cloudinary_output_format,
        )
    raise ValueError(f"Unsupported storage backend: {backend}")
