"""
FastAPI application factory for the Logbook server.

This module creates the FastAPI app with:
- Store initialization on startup
- Session cookie resolution for every request
- Mapping of LogbookError subclasses to JSON error responses
- CORS configuration for a separately served frontend
"""

import logging
import time
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .._version import __version__
from ..access import AccessResolver, ShareManager
from ..auth import AccountService, SessionResolver
from ..config import ServerConfig
from ..errors import (
    ConflictError,
    ForbiddenError,
    LogbookError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from ..logs import LogService
from ..store import LogbookStore
from .routes import router

logger = logging.getLogger(__name__)

# First match wins; subclasses inherit their parent's status.
_STATUS_BY_ERROR: list[tuple[type[LogbookError], int]] = [
    (ValidationError, 400),
    (UnauthenticatedError, 401),
    (ForbiddenError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
]


def _error_response(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, "code": code})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create the database schema before serving."""
    await app.state.store.initialize()
    logger.info("Logbook server started", extra={"version": __version__})

    yield

    logger.info("Logbook server stopped")


def create_app(
    config: ServerConfig | None = None,
    store: LogbookStore | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Server configuration (defaults if not given)
        store: Store to use instead of one built from config.storage
        clock: Wall clock in seconds, used for session expiry
    """
    config = config or ServerConfig()
    store = store or LogbookStore(
        config.storage.database_path,
        wal_mode=config.storage.wal_mode,
        busy_timeout_ms=config.storage.busy_timeout_ms,
    )

    sessions = SessionResolver(store, ttl_seconds=config.auth.session_ttl_seconds, clock=clock)
    access = AccessResolver(store)

    app = FastAPI(
        title="Logbook",
        description="Personal event logs with typed fields and share links.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.store = store
    app.state.sessions = sessions
    app.state.accounts = AccountService(
        store, sessions, allow_registration=config.auth.allow_registration
    )
    app.state.access = access
    app.state.shares = ShareManager(store, access)
    app.state.logs = LogService(store, access)

    if config.http.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(config.http.cors_origins),
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def resolve_session(request: Request, call_next):
        """Attach the caller's identity; drop cookies that no longer resolve."""
        cookie_name = config.auth.cookie_name
        resolution = await sessions.resolve(request.cookies.get(cookie_name))
        request.state.identity = resolution.identity

        response = await call_next(request)

        if resolution.clear_credential:
            # A handler that set a fresh cookie (login) takes precedence.
            already_set = any(
                header.startswith(f"{cookie_name}=")
                for header in response.headers.getlist("set-cookie")
            )
            if not already_set:
                response.delete_cookie(cookie_name, path="/", httponly=True, samesite="lax")
        return response

    @app.exception_handler(LogbookError)
    async def handle_logbook_error(request: Request, exc: LogbookError):
        for error_type, status_code in _STATUS_BY_ERROR:
            if isinstance(exc, error_type):
                return _error_response(status_code, exc.message, exc.code)

        # InternalError and anything not listed above
        logger.error(
            "Internal error",
            extra={"path": request.url.path, "code": exc.code},
            exc_info=exc,
        )
        return _error_response(500, "internal error", "INTERNAL")

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return _error_response(400, "invalid request body", "VALIDATION_ERROR")

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.error(
            "Unhandled error",
            extra={"path": request.url.path, "method": request.method},
            exc_info=exc,
        )
        return _error_response(500, "internal error", "INTERNAL")

    app.include_router(router, prefix="/api")

    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "logbook", "version": __version__}

    return app
