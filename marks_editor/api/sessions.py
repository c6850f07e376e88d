"""Edit-session API routes.

Provides:
    POST   /sessions                        — Load a batch and open a session.
    GET    /sessions/{session_id}           — Current render state.
    GET    /sessions/{session_id}/changes   — Preview of the pending change-set.
    PATCH  /sessions/{session_id}/marks/{i} — Edit one field of one row.
    POST   /sessions/{session_id}/undo      — Undo the last edit.
    POST   /sessions/{session_id}/redo      — Redo the last undone edit.
    POST   /sessions/{session_id}/save      — Submit the change-set.
    DELETE /sessions/{session_id}           — Discard without saving.

The routes are a thin controller: every rule lives in ``EditSession``.
"""

import logging

from fastapi import APIRouter, Query, Response, status

from marks_editor.api.dependencies import MarksClientDep, SessionStoreDep, SettingsDep
from marks_editor.exceptions import BatchLoadError
from marks_editor.schemas.session import (
    ChangeSetResponse,
    EditRequest,
    EditResponse,
    OpenSessionRequest,
    SaveResponse,
    SessionStateResponse,
    change_set_payload,
)
from marks_editor.services.edit_session import EditSession, SaveStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])

_SAVE_MESSAGES: dict[SaveStatus, str] = {
    SaveStatus.SAVED: "Changes saved",
    SaveStatus.NOTHING_TO_SAVE: "No changes to save",
    SaveStatus.NOT_EDITABLE: "This batch is locked for editing",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _session_state(session: EditSession) -> SessionStateResponse:
    """Build the render state for an open session."""
    change_set = session.diff()
    return SessionStateResponse(
        session_id=session.session_id,
        group_key=session.group_key,
        state=session.state.value,
        batch=session.batch,
        pagination=session.pagination,
        marks=list(session.working),
        is_editable=session.is_editable,
        is_dirty=bool(change_set),
        is_saving=session.is_saving,
        can_undo=session.can_undo,
        can_redo=session.can_redo,
        undo_depth=len(session.undo_stack),
        redo_depth=len(session.redo_stack),
        pending_changes=len(change_set),
    )


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=SessionStateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open an edit session for a batch",
    responses={502: {"description": "Batch could not be loaded"}},
)
async def open_session(
    payload: OpenSessionRequest,
    store: SessionStoreDep,
    client: MarksClientDep,
    settings: SettingsDep,
) -> SessionStateResponse:
    """Load the batch from the marks API and open a fresh session on it."""
    detail = await client.load_batch(
        payload.group_key,
        page=payload.page,
        page_size=payload.page_size or settings.default_page_size,
    )
    session = EditSession.from_batch_detail(
        detail, role=payload.role, undo_limit=settings.undo_limit
    )
    store.prune()
    store.add(session)
    return _session_state(session)


@router.get(
    "/{session_id}",
    response_model=SessionStateResponse,
    summary="Get the current state of a session",
    responses={404: {"description": "Session not found"}},
)
async def get_session(session_id: str, store: SessionStoreDep) -> SessionStateResponse:
    return _session_state(store.get(session_id))


@router.get(
    "/{session_id}/changes",
    response_model=ChangeSetResponse,
    summary="Preview the pending change-set",
)
async def get_changes(session_id: str, store: SessionStoreDep) -> ChangeSetResponse:
    """Return exactly what a save would submit right now."""
    session = store.get(session_id)
    change_set = session.diff()
    return ChangeSetResponse(
        group_key=session.group_key,
        marks=change_set_payload(change_set),
        count=len(change_set),
    )


@router.patch(
    "/{session_id}/marks/{index}",
    response_model=EditResponse,
    summary="Edit a score or comment",
    responses={
        404: {"description": "Session not found"},
        409: {"description": "Save in progress"},
        422: {"description": "Invalid value"},
    },
)
async def edit_mark(
    session_id: str,
    index: int,
    payload: EditRequest,
    store: SessionStoreDep,
) -> EditResponse:
    """Apply one edit; ``applied`` is false when the batch is locked."""
    session = store.get(session_id)
    applied = session.apply_edit(index, payload.field, payload.value)
    return EditResponse(applied=applied, session=_session_state(session))


@router.post(
    "/{session_id}/undo",
    response_model=SessionStateResponse,
    summary="Undo the last edit",
)
async def undo(session_id: str, store: SessionStoreDep) -> SessionStateResponse:
    session = store.get(session_id)
    session.undo()
    return _session_state(session)


@router.post(
    "/{session_id}/redo",
    response_model=SessionStateResponse,
    summary="Redo the last undone edit",
)
async def redo(session_id: str, store: SessionStoreDep) -> SessionStateResponse:
    session = store.get(session_id)
    session.redo()
    return _session_state(session)


@router.post(
    "/{session_id}/save",
    response_model=SaveResponse,
    summary="Save pending changes",
    responses={
        409: {"description": "Save already in progress"},
        502: {"description": "Marks API rejected or did not receive the save"},
    },
)
async def save_session(
    session_id: str,
    store: SessionStoreDep,
    client: MarksClientDep,
    settings: SettingsDep,
    reload: bool = Query(default=True, description="Reopen from a fresh baseline after saving"),
) -> SaveResponse:
    """Submit the change-set.

    On success the session is retired and, unless ``reload=false``, a new
    session is opened on a freshly fetched baseline for the same page.  On
    failure the session is untouched and the error is returned (502) so
    the same save can be retried.
    """
    session = store.get(session_id)
    result = await session.save(client)

    if result.status is not SaveStatus.SAVED:
        return SaveResponse(
            status=result.status.value,
            message=_SAVE_MESSAGES[result.status],
            session=_session_state(session),
        )

    store.prune()
    next_state: SessionStateResponse | None = None
    if reload:
        pagination = session.pagination
        try:
            detail = await client.load_batch(
                session.group_key,
                page=pagination.page,
                page_size=pagination.page_size or settings.default_page_size,
            )
        except BatchLoadError as exc:
            logger.warning(
                "Saved batch %s but could not reload it: %s", session.group_key, exc
            )
        else:
            fresh = EditSession.from_batch_detail(
                detail, role=session.role, undo_limit=settings.undo_limit
            )
            store.add(fresh)
            next_state = _session_state(fresh)

    return SaveResponse(
        status=result.status.value,
        saved_count=result.saved_count,
        message=_SAVE_MESSAGES[result.status],
        session=next_state,
    )


@router.delete(
    "/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Discard a session without saving",
)
async def discard_session(session_id: str, store: SessionStoreDep) -> Response:
    store.discard(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
