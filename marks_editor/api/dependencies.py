"""FastAPI dependency injection helpers.

Provides reusable ``Depends``-compatible callables for:
- ``get_settings()``      → application settings
- ``get_marks_client()``  → marks API client bound to the caller's token
- ``get_session_store()`` → in-memory edit session registry (on app.state)
"""

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from marks_editor.config import Settings
from marks_editor.config import get_settings as _get_settings_impl
from marks_editor.services.marks_client import MarksApiClient
from marks_editor.services.session_store import SessionStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def get_settings() -> Settings:
    """Return the cached application settings."""
    return _get_settings_impl()


SettingsDep = Annotated[Settings, Depends(get_settings)]


# ---------------------------------------------------------------------------
# Marks API client (shared httpx pool stored on app.state during lifespan)
# ---------------------------------------------------------------------------


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def get_marks_client(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
) -> MarksApiClient:
    """Return the marks API client, forwarding the caller's bearer token.

    Args:
        request: Injected by FastAPI; provides access to ``app.state``.
        authorization: Incoming ``Authorization`` header, if any.

    Raises:
        HTTPException: 503 if the client was not initialised at startup.
    """
    client: MarksApiClient | None = getattr(request.app.state, "marks_client", None)
    if client is None:
        logger.error("Marks client not initialised — app.state.marks_client is None")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Marks API client is not available. Check server logs for startup errors.",
        )
    return client.with_token(_bearer_token(authorization))


MarksClientDep = Annotated[MarksApiClient, Depends(get_marks_client)]


# ---------------------------------------------------------------------------
# Session store
# ---------------------------------------------------------------------------


def get_session_store(request: Request) -> SessionStore:
    """Return the application-wide session store from ``app.state``."""
    store: SessionStore | None = getattr(request.app.state, "session_store", None)
    if store is None:
        store = SessionStore()
        request.app.state.session_store = store
    return store


SessionStoreDep = Annotated[SessionStore, Depends(get_session_store)]
