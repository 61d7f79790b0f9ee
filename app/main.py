import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.router import router as v1_router
from app.core.config import Settings, settings as default_settings
from app.core.db import build_engine, build_sessionmaker
from app.core.telemetry import setup_telemetry
from app.schemas.common import ErrorResponse
from app.services.auth import build_authenticator
from app.services.errors import MediaError, PersistenceError, StorageError
from app.services.http_client import MediaHttpClient
from app.services.storage import LocalAssetStore, build_asset_store


log = logging.getLogger(__name__)


def _error_response(
    settings: Settings,
    *,
    status_code: int,
    code: str,
    message: str,
    details: list[dict] | None = None,
    retryable: bool | None = None,
    exc: BaseException | None = None,
) -> JSONResponse:
    body = ErrorResponse(code=code, message=message, details=details or [], retryable=retryable)
    if settings.debug_errors and exc is not None:
        body.traceback = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def _install_error_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(MediaError)
    async def _media_error(request: Request, exc: MediaError) -> JSONResponse:
        if exc.status_code >= 500:
            log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        retryable = exc.retryable if isinstance(exc, (StorageError, PersistenceError)) else None
        return _error_response(
            settings,
            status_code=exc.status_code,
            code=exc.code,
            message=exc.message,
            details=exc.details,
            retryable=retryable,
            exc=exc,
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # unknown routes, wrong methods and static file misses
        if exc.status_code == 404:
            code, message = "not_found", "Route not found"
        elif exc.status_code == 405:
            code, message = "method_not_allowed", "Method not allowed"
        else:
            code, message = f"http_{exc.status_code}", str(exc.detail)
        response = _error_response(settings, status_code=exc.status_code, code=code, message=message)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return _error_response(
            settings,
            status_code=400,
            code="validation_error",
            message=". ".join(d["message"] for d in details) or "Invalid request",
            details=details,
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        log.exception("%s %s crashed", request.method, request.url.path)
        return _error_response(
            settings,
            status_code=500,
            code="internal_error",
            message="Internal server error",
            exc=exc,
        )


def create_app(settings: Settings) -> FastAPI:
    engine = build_engine(settings.database_url)
    http = MediaHttpClient(timeout_seconds=settings.http_timeout_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("%s starting (env=%s, storage=%s)", settings.service_name, settings.env, settings.storage_backend)
        yield
        await http.aclose()
        await engine.dispose()

    app = FastAPI(title="Media API", version="0.1.0", lifespan=lifespan)

    app.state.settings = settings
    app.state.engine = engine
    app.state.sessionmaker = build_sessionmaker(engine)
    app.state.http = http
    app.state.asset_store = build_asset_store(settings, http)
    app.state.authenticator = build_authenticator(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    _install_error_handlers(app, settings)
    setup_telemetry(app, settings, engine)
    app.include_router(v1_router)

    if isinstance(app.state.asset_store, LocalAssetStore):
        app.mount("/uploads", StaticFiles(directory=app.state.asset_store.base), name="uploads")

    return app


def build_app() -> FastAPI:
    return create_app(default_settings)


def run() -> None:
    import uvicorn

    logging.basicConfig(level=default_settings.log_level)
    uvicorn.run("app.main:build_app", factory=True, host="0.0.0.0", port=default_settings.port)


if __name__ == "__main__":
    run()
