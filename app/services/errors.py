from __future__ import annotations

from typing import Any


class MediaError(Exception):
    """Base for errors the HTTP layer renders as ``{success: false, ...}``."""

    status_code = 500
    code = "media_error"

    def __init__(self, message: str, *, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class ValidationError(MediaError):
    status_code = 400
    code = "validation_error"


class NotFound(MediaError):
    status_code = 404
    code = "not_found"


class AnonymousError(MediaError):
    status_code = 401
    code = "unauthenticated"


class StorageError(MediaError):
    """Asset store unreachable, or a write/delete it reported as failed."""

    status_code = 500
    code = "storage_error"

    def __init__(self, message: str, *, retryable: bool = False, details: list[dict[str, Any]] | None = None):
        super().__init__(message, details=details)
        self.retryable = retryable


class PersistenceError(MediaError):
    """Metadata store unreachable or a write failed."""

    status_code = 500
    code = "persistence_error"

    def __init__(self, message: str, *, retryable: bool = False, details: list[dict[str, Any]] | None = None):
        super().__init__(message, details=details)
        self.retryable = retryable
