from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from fastapi import Request

from app.core.config import Settings
from app.core.security import api_key_matches
from app.services.errors import AnonymousError


API_KEY_HEADER = "X-API-Key"
DEV_ENVS = ("dev", "test")


@dataclass(frozen=True)
class Principal:
    id: str
    role: str  # "admin"


class Authenticator(Protocol):
    def identify(self, request: Request) -> Principal:
        """Return the caller's principal or raise AnonymousError."""
        ...


class ApiKeyAuthenticator:
    def __init__(self, *, admin_key_hash: str, pepper: str):
        self._admin_key_hash = admin_key_hash
        self._pepper = pepper

    def identify(self, request: Request) -> Principal:
        api_key = request.headers.get(API_KEY_HEADER)
        if not api_key:
            raise AnonymousError(f"Missing {API_KEY_HEADER}")
        if not api_key_matches(api_key, self._admin_key_hash, self._pepper):
            raise AnonymousError("Invalid API key")
        return Principal(id="admin", role="admin")


class DevAuthenticator:
    """Accepts every request as a fixed admin. Only for dev and test environments."""

    principal = Principal(id="dev-admin", role="admin")

    def __init__(self, env: str):
        if env not in DEV_ENVS:
            raise RuntimeError(f"DevAuthenticator is not allowed in env={env!r}")

    def identify(self, request: Request) -> Principal:
        return self.principal


def build_authenticator(settings: Settings) -> Authenticator:
    if settings.auth_mode == "dev":
        return DevAuthenticator(settings.env)
    return ApiKeyAuthenticator(
        admin_key_hash=settings.admin_api_key_hash,
        pepper=settings.api_key_pepper.get_secret_value(),
    )


async def get_principal(request: Request) -> Principal:
    authenticator: Authenticator = request.app.state.authenticator
    return authenticator.identify(request)
