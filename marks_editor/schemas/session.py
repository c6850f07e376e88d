"""Pydantic v2 request/response schemas for the edit-session routes."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr

from marks_editor.schemas.marks import BatchInfo, MarkUpdate, Pagination, StudentMark


class OpenSessionRequest(BaseModel):
    """Request payload for POST /sessions.

    Attributes:
        group_key: Batch to open.
        role: Role of the user who will edit (checked on every edit).
        page: Page of marks to load.
        page_size: Marks per page (defaults to ``Settings.default_page_size``).
    """

    model_config = ConfigDict(strict=False, populate_by_name=True)

    group_key: str = Field(..., min_length=1)
    role: str = Field(..., min_length=1)
    page: int = Field(default=1, ge=1)
    page_size: int | None = Field(default=None, gt=0)


class EditRequest(BaseModel):
    """Request payload for PATCH /sessions/{id}/marks/{index}.

    ``value`` is the raw input: text from an input box, a number, or
    ``null`` to clear the field.  Booleans are rejected rather than
    coerced to 0 or 1.
    """

    model_config = ConfigDict(strict=False, populate_by_name=True)

    field: Literal["score", "comment"]
    value: StrictStr | StrictInt | StrictFloat | None = None


class SessionStateResponse(BaseModel):
    """Everything a page needs to render an open edit session."""

    model_config = ConfigDict(strict=False, populate_by_name=True)

    session_id: str
    group_key: str
    state: str = Field(..., pattern=r"^(loaded|dirty|saving|retired)$")
    batch: BatchInfo
    pagination: Pagination
    marks: list[StudentMark]
    is_editable: bool
    is_dirty: bool
    is_saving: bool
    can_undo: bool
    can_redo: bool
    undo_depth: int = Field(default=0, ge=0)
    redo_depth: int = Field(default=0, ge=0)
    pending_changes: int = Field(default=0, ge=0)


class EditResponse(BaseModel):
    """Response for an edit: whether it applied, plus the new state."""

    model_config = ConfigDict(strict=False, populate_by_name=True)

    applied: bool
    session: SessionStateResponse


class ChangeSetResponse(BaseModel):
    """Preview of the change-set a save would submit."""

    model_config = ConfigDict(strict=False, populate_by_name=True)

    group_key: str
    marks: list[dict]
    count: int


class SaveResponse(BaseModel):
    """Response for POST /sessions/{id}/save.

    Attributes:
        status: ``saved``, ``nothing_to_save`` or ``not_editable``.
        saved_count: Number of rows submitted.
        message: Human-readable outcome.
        session: State of the session to continue with; after a successful
            save this is a fresh session built from the reloaded batch, or
            ``None`` when reloading was skipped or failed.
    """

    model_config = ConfigDict(strict=False, populate_by_name=True)

    status: str = Field(..., pattern=r"^(saved|nothing_to_save|not_editable)$")
    saved_count: int = Field(default=0, ge=0)
    message: str = Field(default="")
    session: SessionStateResponse | None = None


def change_set_payload(change_set: list[MarkUpdate]) -> list[dict]:
    """Serialise a change-set the way it goes over the wire."""
    return [update.model_dump(exclude_unset=True) for update in change_set]
