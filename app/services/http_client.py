from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Literal

import httpx


HttpMethod = Literal["GET", "POST", "DELETE"]

FormFiles = Mapping[str, tuple[str, bytes, str]]

# 420 is Cloudinary's rate-limit status
RETRYABLE_STATUSES = frozenset({408, 420, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class HttpResult:
    ok: bool
    status_code: int | None
    detail: dict[str, Any] = field(default_factory=dict)

    error_code: str | None = None
    error_message: str | None = None
    retryable: bool = False

    @classmethod
    def transport_failure(cls, code: str, exc: Exception) -> "HttpResult":
        # no response was received
        return cls(
            ok=False,
            status_code=None,
            detail={"error": code.lower()},
            error_code=code,
            error_message=str(exc) or exc.__class__.__name__,
            retryable=True,
        )


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}...(truncated, {len(text)} chars)"


def _body_of(resp: httpx.Response, limit: int) -> dict[str, Any]:
    content_type = (resp.headers.get("content-type") or "").lower()
    if "json" in content_type:
        try:
            parsed = resp.json()
        except ValueError:
            return {"raw": _truncate(resp.text, limit)}
        return parsed if isinstance(parsed, dict) else {"data": parsed}
    return {"raw": _truncate(resp.text, limit), "content_type": content_type or None}


class MediaHttpClient:
    """
    Pooled HTTP access to remote asset hosts.

    Never raises for transport or HTTP failures: callers get an HttpResult
    and decide. No retries happen here; asset deletes that keep failing are
    handed to the cleanup outbox instead.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 20.0,
        max_response_body_chars: int = 20_000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._max_body = max_response_body_chars
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds), transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        *,
        method: HttpMethod,
        url: str,
        params: Mapping[str, str] | None = None,
        data: Mapping[str, Any] | None = None,
        files: FormFiles | None = None,
        auth: tuple[str, str] | None = None,
    ) -> HttpResult:
        try:
            resp = await self._client.request(
                method,
                url,
                params=dict(params) if params else None,
                data=dict(data) if data is not None else None,
                files=dict(files) if files is not None else None,
                auth=auth,
            )
        except httpx.TimeoutException as e:
            return HttpResult.transport_failure("TIMEOUT", e)
        except httpx.RequestError as e:
            # DNS, refused connections, TLS
            return HttpResult.transport_failure("REQUEST_ERROR", e)

        detail = _body_of(resp, self._max_body)
        if resp.is_success:
            return HttpResult(ok=True, status_code=resp.status_code, detail=detail)

        return HttpResult(
            ok=False,
            status_code=resp.status_code,
            detail=detail,
            error_code=f"HTTP_{resp.status_code}",
            error_message=f"HTTP {resp.status_code}",
            retryable=resp.status_code in RETRYABLE_STATUSES,
        )

    async def get(self, *, url: str, auth: tuple[str, str] | None = None) -> HttpResult:
        return await self.request(method="GET", url=url, auth=auth)

    async def post_form(self, *, url: str, data: Mapping[str, Any], files: FormFiles | None = None) -> HttpResult:
        return await self.request(method="POST", url=url, data=data, files=files)
