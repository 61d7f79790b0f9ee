from app.core.config import Settings


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        _env_file=None,
        env="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'media.db'}",
        storage_backend="local",
        local_media_path=str(tmp_path / "uploads"),
        public_base_url="http://test",
        auth_mode="dev",
        otlp_endpoint="",
    )
    values.update(overrides)
    return Settings(**values)


def jpeg_bytes(size: int = 1024) -> bytes:
    # JPEG SOI marker followed by padding; content is never decoded
    return b"\xff\xd8\xff\xe0" + b"\x00" * max(0, size - 4)
