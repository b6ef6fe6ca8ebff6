"""
api/main.py -- FastAPI application factory for msgboard.

create_app(settings) builds a fully wired app. The Settings instance is the
only configuration any component sees: it is stored on app.state.settings
and handlers read it from there.

Run with:  uvicorn asgi:app --reload
           python main.py serve

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- CORS_ORIGIN plus the local frontend dev server
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter
  3. log_requests       -- one log line per request with latency

Lifespan opens the user and board stores on startup and disposes them on
shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.appeals import router as appeals_router
from api.routes.messages import router as messages_router
from api.routes.uploads import router as uploads_router
from api.routes.users import router as users_router
from auth.store import UserStore
from board.store import BoardStore
from board.uploads import UPLOAD_URL_PREFIX
from core.config import Settings, get_settings
from core.errors import BoardError

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("msgboard.api")


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(
            exclude_none=True
        ),
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open stores on startup, dispose them on shutdown."""
    settings: Settings = app.state.settings
    logger.info("msgboard API starting up")
    app.state.user_store = UserStore(settings.database_url)
    app.state.board = BoardStore(settings.database_url)
    logger.info("Stores initialized")

    yield

    app.state.board.close()
    app.state.user_store.close()
    logger.info("msgboard API shutdown complete")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


async def board_error_handler(request: Request, exc: BoardError) -> JSONResponse:
    """Render any taxonomy error with its own status and code."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return _error(exc.status_code, exc.code, exc.message, exc.detail)


def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded.

    Must stay sync: SlowAPIMiddleware calls it directly and falls back to its
    own handler when given a coroutine function.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Missing or malformed request fields are a 400 validation_error."""
    return _error(400, "validation_error", "Request validation failed.", str(exc.errors()))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework-raised HTTP errors (unknown route, wrong method) in the same envelope."""
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


async def persistence_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Database failures. The driver message stays in the server log."""
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return _error(500, "persistence_error", "A storage error occurred.")


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the msgboard ASGI app around one immutable Settings instance."""
    settings = settings or get_settings()

    app = FastAPI(
        title="msgboard API",
        description="Message board: accounts, messages, likes, replies, appeals and image uploads.",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Register in the order a request should meet them: CORS -> SlowAPI.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_middleware(SlowAPIMiddleware)
    app.middleware("http")(log_requests)

    # SlowAPI looks for app.state.limiter by convention. The limiter is a
    # process-wide singleton (route limits bind to it at import time), so
    # enabled and its counters are shared by every app built in this
    # process: the last create_app() call decides enabled for all of them.
    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter

    app.add_exception_handler(BoardError, board_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, persistence_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(users_router, prefix="/api", tags=["Accounts"])
    app.include_router(messages_router, prefix="/api", tags=["Messages"])
    app.include_router(appeals_router, prefix="/api", tags=["Appeals"])
    app.include_router(uploads_router, prefix="/api", tags=["Uploads"])

    @app.get("/api/health", tags=["Health"])
    async def health() -> HealthResponse:
        """Return API liveness and current version. Never rate limited."""
        return HealthResponse(version=VERSION)

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount(UPLOAD_URL_PREFIX, StaticFiles(directory=str(upload_dir)), name="uploads")

    return app
