"""Pydantic v2 request/response schemas for the Marks Editor."""

from marks_editor.schemas.marks import (
    BatchDetail,
    BatchInfo,
    MarkUpdate,
    MarksOverview,
    Pagination,
    RecentBatch,
    SaveRequest,
    StudentMark,
)
from marks_editor.schemas.session import (
    ChangeSetResponse,
    EditRequest,
    EditResponse,
    OpenSessionRequest,
    SaveResponse,
    SessionStateResponse,
)

__all__ = [
    "StudentMark",
    "BatchInfo",
    "Pagination",
    "BatchDetail",
    "RecentBatch",
    "MarkUpdate",
    "MarksOverview",
    "SaveRequest",
    "OpenSessionRequest",
    "EditRequest",
    "SessionStateResponse",
    "EditResponse",
    "ChangeSetResponse",
    "SaveResponse",
]
