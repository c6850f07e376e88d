"""Marks Editor API — FastAPI application entry point.

Hosts batch score-editing sessions for a page-level UI: a batch is loaded
from the upstream marks API, edited in memory with undo/redo, and saved
back as a minimal change-set.

Features:
- Lifespan context manager: opens the shared httpx pool and session store
  on startup, retires sessions and closes the pool on shutdown
- Structured exception handlers for all domain exceptions
- Request/response logging middleware with request-ID tracing
- /health endpoint reporting open session count
"""

from __future__ import annotations

import datetime
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import httpx
from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from marks_editor.config import get_settings
from marks_editor.exceptions import (
    BatchLoadError,
    SaveError,
    SaveInProgressError,
    SessionNotFoundError,
    SessionRetiredError,
    ValidationError,
)

# ---------------------------------------------------------------------------
# Logging setup  (must happen before routers are imported)
# ---------------------------------------------------------------------------

_settings = get_settings()
logging.basicConfig(
    level=getattr(logging, _settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# ---------------------------------------------------------------------------
# Router and service imports
# ---------------------------------------------------------------------------

from marks_editor.api import batches as _batches_module  # noqa: E402
from marks_editor.api import sessions as _sessions_module  # noqa: E402
from marks_editor.services.marks_client import MarksApiClient  # noqa: E402
from marks_editor.services.session_store import SessionStore  # noqa: E402

# ---------------------------------------------------------------------------
# Lifespan context manager
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle.

    Startup:
    1. Open one ``httpx.AsyncClient`` shared by every marks API call.
    2. Store the client and an empty ``SessionStore`` on ``app.state``.

    Shutdown:
    1. Retire every open session (unsaved edits are discarded).
    2. Close the HTTP connection pool.
    """
    logger.info("Marks Editor API — starting up (v%s)", _settings.app_version)

    http_client = httpx.AsyncClient(timeout=_settings.request_timeout_seconds)
    app.state.marks_client = MarksApiClient(
        http_client, base_url=_settings.marks_api_base_url
    )
    app.state.session_store = SessionStore(
        idle_timeout_seconds=_settings.session_idle_timeout_seconds
    )
    logger.info(
        "Marks API: %s (sessions expire after %.0fs idle)",
        _settings.marks_api_base_url,
        _settings.session_idle_timeout_seconds,
    )

    logger.info("Startup complete — serving requests")
    yield

    logger.info("Marks Editor API — shutting down")
    store: SessionStore = app.state.session_store
    if len(store):
        logger.warning("Discarding %d open edit sessions", len(store))
    store.close()
    await http_client.aclose()
    logger.info("Shutdown complete")


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Marks Editor API",
    description=(
        "Batch score editing for uploaded student marks: open a batch, edit "
        "scores and comments with undo/redo, and save only what changed."
    ),
    version=_settings.app_version,
    debug=_settings.debug,
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "health",
            "description": "System health and readiness checks.",
        },
        {
            "name": "sessions",
            "description": (
                "Edit sessions. Open a batch, apply edits, undo/redo, preview"
                " the change-set, and save."
            ),
        },
        {
            "name": "batches",
            "description": "Recently uploaded batches and term upload progress.",
        },
    ],
)

# ---------------------------------------------------------------------------
# CORS middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_allow_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
    expose_headers=[REQUEST_ID_HEADER],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next: Any) -> Response:
    """Log one line per request and tag the response with a request id.

    An ``X-Request-ID`` sent by the page (or a gateway in front of it) is
    reused so edits can be traced end to end; otherwise a short id is
    generated.  Server errors are logged at WARNING.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
    started = time.monotonic()
    status_code = 500
    try:
        response: Response = await call_next(request)
        status_code = response.status_code
    finally:
        elapsed_ms = (time.monotonic() - started) * 1000
        logger.log(
            logging.WARNING if status_code >= 500 else logging.INFO,
            "[%s] %s %s -> %d (%.1f ms)",
            request_id,
            request.method,
            request.url.path,
            status_code,
            elapsed_ms,
        )

    response.headers[REQUEST_ID_HEADER] = request_id
    return response


# ---------------------------------------------------------------------------
# Structured exception handlers
# ---------------------------------------------------------------------------


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """422 for rejected edits, scoped to the offending field."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_failed",
            "message": str(exc),
            "field": exc.field,
            "index": exc.index,
            "value": _json_safe(exc.value),
        },
    )


@app.exception_handler(BatchLoadError)
async def batch_load_error_handler(request: Request, exc: BatchLoadError) -> JSONResponse:
    """502 when a batch cannot be loaded from the marks API."""
    logger.error("BatchLoadError group_key=%s: %s", exc.group_key, exc)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={
            "error": "batch_load_failed",
            "message": str(exc),
            "group_key": exc.group_key,
            "upstream_status": exc.status_code,
        },
    )


@app.exception_handler(SaveError)
async def save_error_handler(request: Request, exc: SaveError) -> JSONResponse:
    """502 for failed saves; the session is intact and the save can be retried."""
    logger.error("SaveError group_key=%s status=%s: %s", exc.group_key, exc.status_code, exc)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={
            "error": "save_failed",
            "message": str(exc),
            "group_key": exc.group_key,
            "upstream_status": exc.status_code,
            "retryable": True,
        },
    )


@app.exception_handler(SaveInProgressError)
async def save_in_progress_handler(
    request: Request, exc: SaveInProgressError
) -> JSONResponse:
    """409 while a save for the session is still pending."""
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "error": "save_in_progress",
            "message": str(exc),
            "group_key": exc.group_key,
        },
    )


@app.exception_handler(SessionRetiredError)
async def session_retired_handler(
    request: Request, exc: SessionRetiredError
) -> JSONResponse:
    """409 for operations on a retired session."""
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "error": "session_retired",
            "message": str(exc),
            "group_key": exc.group_key,
        },
    )


@app.exception_handler(SessionNotFoundError)
async def session_not_found_handler(
    request: Request, exc: SessionNotFoundError
) -> JSONResponse:
    """404 for unknown or already retired session ids."""
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={
            "error": "session_not_found",
            "message": str(exc),
            "session_id": exc.session_id,
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render FastAPI HTTPExceptions as structured JSON."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "http_error",
            "status_code": exc.status_code,
            "detail": exc.detail,
        },
    )


# ---------------------------------------------------------------------------
# Core routes
# ---------------------------------------------------------------------------


@app.get("/", tags=["health"], summary="API root / service info")
async def root() -> dict[str, str]:
    """Return basic service metadata and navigation links."""
    return {
        "service": "Marks Editor API",
        "version": _settings.app_version,
        "documentation": "/docs",
        "health": "/health",
        "openapi": "/openapi.json",
    }


@app.get("/health", tags=["health"], summary="Service health check")
async def health_check(request: Request) -> dict[str, Any]:
    """Return service health and the number of open edit sessions."""
    store: SessionStore | None = getattr(request.app.state, "session_store", None)
    client: MarksApiClient | None = getattr(request.app.state, "marks_client", None)

    return {
        "status": "ok" if client is not None else "degraded",
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "version": _settings.app_version,
        "marks_api": _settings.marks_api_base_url,
        "open_sessions": len(store) if store is not None else 0,
    }


# ---------------------------------------------------------------------------
# Include routers
# ---------------------------------------------------------------------------

app.include_router(_sessions_module.router)
app.include_router(_batches_module.router)


# ---------------------------------------------------------------------------
# Development entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "marks_editor.main:app",
        host="0.0.0.0",
        port=8001,
        reload=True,
        log_level=_settings.log_level.lower(),
    )
