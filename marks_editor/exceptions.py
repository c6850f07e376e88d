"""Custom exception classes for the Marks Editor.

Every error the editing engine or the marks API client can raise is one of
these typed exceptions, so that the FastAPI exception handlers in
``marks_editor.main`` can turn them into structured HTTP responses.
"""

from __future__ import annotations

from typing import Any


class ValidationError(Exception):
    """Raised when a local edit is rejected before any mutation happens.

    Covers unparsable or out-of-range scores, unknown field names, and row
    indexes outside the working copy.  The error is field-scoped so the
    caller can render it inline next to the offending input.

    Args:
        message: Human-readable description of the problem.
        field: Name of the edited field (``"score"`` or ``"comment"``).
        value: The raw value that was rejected.
        index: Row index in the working copy, when known.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        index: int | None = None,
    ) -> None:
        super().__init__(message)
        self.field: str | None = field
        self.value: Any = value
        self.index: int | None = index


class BatchLoadError(Exception):
    """Raised when a batch cannot be fetched or its payload is malformed.

    Fatal for that load attempt: no edit session is built from it.

    Args:
        message: Description of the failure.
        group_key: Group key of the batch that failed to load.
        status_code: Upstream HTTP status, if a response was received.
    """

    def __init__(
        self,
        message: str,
        group_key: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.group_key: str | None = group_key
        self.status_code: int | None = status_code


class SaveError(Exception):
    """Raised when the marks API rejects or fails to receive a change-set.

    The session that attempted the save is left exactly as it was, so the
    same change-set can be resubmitted.

    Args:
        message: Error detail extracted from the upstream response.
        group_key: Group key of the batch being saved.
        status_code: Upstream HTTP status, or ``None`` for transport errors.
    """

    def __init__(
        self,
        message: str,
        group_key: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.group_key: str | None = group_key
        self.status_code: int | None = status_code


class SaveInProgressError(Exception):
    """Raised when a session is asked to change while a save is pending."""

    def __init__(self, group_key: str) -> None:
        super().__init__(f"A save is already in progress for batch {group_key}")
        self.group_key: str = group_key


class SessionRetiredError(Exception):
    """Raised when an operation targets a session that has been retired."""

    def __init__(self, group_key: str) -> None:
        super().__init__(f"Edit session for batch {group_key} has been retired")
        self.group_key: str = group_key


class SessionNotFoundError(Exception):
    """Raised when the controller is asked for an unknown session id.

    Args:
        session_id: The id that was not found in the session store.
    """

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Edit session {session_id} not found")
        self.session_id: str = session_id
