"""In-memory edit session for one batch of marks.

``EditSession`` owns three things:

- the **baseline**: records exactly as the server returned them, fixed for
  the lifetime of the session;
- the **working copy**: the records being edited, always index-aligned
  with the baseline;
- bounded **undo** and **redo** stacks of full working-copy snapshots.

Records are frozen pydantic models and the working copy is a tuple, so a
snapshot is just a reference to the current tuple.  An edit builds a new
tuple; nothing ever mutates a snapshot once it is on a stack.

Usage::

    session = EditSession(batch=detail.batch, baseline=detail.marks, role="teacher")
    session.apply_edit(0, "score", "16")
    session.undo()
    result = await session.save(marks_client)
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from marks_editor.config import get_settings
from marks_editor.exceptions import (
    SaveError,
    SaveInProgressError,
    SessionRetiredError,
    ValidationError,
)
from marks_editor.schemas.marks import (
    BatchDetail,
    BatchInfo,
    MarkUpdate,
    Pagination,
    StudentMark,
)
from marks_editor.services import access_policy, diff_engine
from marks_editor.services.score_mutator import set_comment, set_score

logger = logging.getLogger(__name__)

EDITABLE_FIELDS: frozenset[str] = frozenset({"score", "comment"})

Snapshot = tuple[StudentMark, ...]


class Persister(Protocol):
    """Anything that can submit a change-set for a batch.

    Implementations raise :class:`~marks_editor.exceptions.SaveError` on
    failure and return normally on success.  Submitting the same
    change-set twice must be harmless.
    """

    async def submit(self, group_key: str, change_set: list[MarkUpdate]) -> None: ...


class SessionState(str, Enum):
    LOADED = "loaded"
    DIRTY = "dirty"
    SAVING = "saving"
    RETIRED = "retired"


class SaveStatus(str, Enum):
    SAVED = "saved"
    NOTHING_TO_SAVE = "nothing_to_save"
    NOT_EDITABLE = "not_editable"


@dataclass
class SaveResult:
    """Outcome of :meth:`EditSession.save` when no error was raised."""

    status: SaveStatus
    change_set: list[MarkUpdate] = field(default_factory=list)

    @property
    def saved_count(self) -> int:
        return len(self.change_set) if self.status is SaveStatus.SAVED else 0


class EditSession:
    """Undo/redo-capable working copy of a batch's marks.

    Args:
        batch: Descriptor of the batch being edited (supplies ``max_score``
            and the server edit-window flag).
        baseline: Ordered records as loaded from the server.
        role: Role of the user editing, checked on every edit and save.
        undo_limit: Capacity of each stack; defaults to ``Settings.undo_limit``.
        session_id: Optional explicit id; a random hex id otherwise.
        pagination: Page metadata of the loaded marks, kept for rendering.

    Raises:
        ValueError: If ``baseline`` is ``None``.
    """

    def __init__(
        self,
        batch: BatchInfo,
        baseline: Sequence[StudentMark],
        role: str | None,
        undo_limit: int | None = None,
        session_id: str | None = None,
        pagination: Pagination | None = None,
    ) -> None:
        if baseline is None:
            raise ValueError("An edit session requires a baseline sequence")

        limit = undo_limit if undo_limit is not None else get_settings().undo_limit
        self.session_id: str = session_id or uuid.uuid4().hex
        self.batch: BatchInfo = batch
        self.role: str | None = role
        self.pagination: Pagination = pagination or Pagination(
            page=1, page_size=len(baseline), total_pages=1, total_count=len(baseline)
        )
        self._baseline: Snapshot = tuple(baseline)
        self._working: Snapshot = self._baseline
        self._undo: deque[Snapshot] = deque(maxlen=limit)
        self._redo: deque[Snapshot] = deque(maxlen=limit)
        self._state: SessionState = SessionState.LOADED

        logger.info(
            "Edit session %s opened for batch %s (%d rows, role=%s, editable=%s)",
            self.session_id,
            batch.group_key,
            len(self._baseline),
            role,
            self.is_editable,
        )

    @classmethod
    def from_batch_detail(
        cls,
        detail: BatchDetail,
        role: str | None,
        undo_limit: int | None = None,
    ) -> EditSession:
        """Build a session from a successfully loaded batch payload."""
        return cls(
            batch=detail.batch,
            baseline=detail.marks,
            role=role,
            undo_limit=undo_limit,
            pagination=detail.pagination,
        )

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def group_key(self) -> str:
        return self.batch.group_key

    @property
    def baseline(self) -> Snapshot:
        return self._baseline

    @property
    def working(self) -> Snapshot:
        return self._working

    @property
    def undo_stack(self) -> tuple[Snapshot, ...]:
        return tuple(self._undo)

    @property
    def redo_stack(self) -> tuple[Snapshot, ...]:
        return tuple(self._redo)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def can_undo(self) -> bool:
        return self._state is not SessionState.RETIRED and bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return self._state is not SessionState.RETIRED and bool(self._redo)

    @property
    def is_saving(self) -> bool:
        return self._state is SessionState.SAVING

    @property
    def is_retired(self) -> bool:
        return self._state is SessionState.RETIRED

    @property
    def is_editable(self) -> bool:
        return access_policy.is_editable(self.role, self.batch)

    @property
    def is_dirty(self) -> bool:
        """Whether there is anything to save, re-derived from the diff."""
        if self.is_retired:
            return False
        return bool(self.diff())

    def diff(self) -> list[MarkUpdate]:
        """Return the current change-set against the baseline."""
        self._ensure_active()
        return diff_engine.compute(self._baseline, self._working)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def apply_edit(self, index: int, field: str, raw_value: Any) -> bool:
        """Apply a single field edit to the row at ``index``.

        Args:
            index: Row index into the working copy.
            field: ``"score"`` or ``"comment"``.
            raw_value: Raw input for the field (text, number or ``None``).

        Returns:
            ``True`` if the edit was applied, ``False`` if the batch is not
            editable for this role (nothing is changed in that case).

        Raises:
            ValidationError: If the field, index or value is invalid.  No
                undo frame is recorded and the working copy is unchanged.
            SaveInProgressError: If a save is pending.
            SessionRetiredError: If the session has been retired.
        """
        self._ensure_mutable()

        if not self.is_editable:
            logger.info(
                "Rejected edit on batch %s row %s: not editable for role %s",
                self.group_key,
                index,
                self.role,
            )
            return False

        if field not in EDITABLE_FIELDS:
            raise ValidationError(
                f"Field {field!r} cannot be edited", field=field, value=raw_value, index=index
            )
        if isinstance(index, bool) or not 0 <= index < len(self._working):
            raise ValidationError(
                f"Row index {index} is out of range", field=field, value=raw_value, index=index
            )

        record = self._working[index]
        try:
            if field == "score":
                updated = set_score(record, raw_value, self.batch.max_score)
            else:
                updated = set_comment(record, raw_value)
        except ValidationError as exc:
            exc.index = index
            logger.debug("Rejected %s edit on row %d: %s", field, index, exc)
            raise

        self._undo.append(self._working)
        self._redo.clear()
        self._working = self._working[:index] + (updated,) + self._working[index + 1 :]
        self._mark_dirty_if_changed()

        logger.debug(
            "Applied %s edit on batch %s row %d (undo depth %d)",
            field,
            self.group_key,
            index,
            len(self._undo),
        )
        return True

    def undo(self) -> bool:
        """Restore the previous working copy; ``False`` if there is none."""
        self._ensure_mutable()
        if not self._undo:
            return False
        self._redo.append(self._working)
        self._working = self._undo.pop()
        self._mark_dirty_if_changed()
        return True

    def redo(self) -> bool:
        """Re-apply the most recently undone working copy; ``False`` if none."""
        self._ensure_mutable()
        if not self._redo:
            return False
        self._undo.append(self._working)
        self._working = self._redo.pop()
        self._mark_dirty_if_changed()
        return True

    async def save(self, persister: Persister) -> SaveResult:
        """Submit the current change-set through ``persister``.

        An empty change-set returns ``NOTHING_TO_SAVE`` without calling the
        persister, as does a session that is not editable
        (``NOT_EDITABLE``).  On success the session is retired.  On failure
        the working copy and both stacks are left untouched, the session
        goes back to ``DIRTY``, and the error is re-raised.

        Raises:
            SaveError: If the persister fails.
            SaveInProgressError: If another save is still pending.
            SessionRetiredError: If the session has been retired.
        """
        self._ensure_mutable()

        change_set = self.diff()
        if not change_set:
            logger.info("Nothing to save for batch %s", self.group_key)
            return SaveResult(status=SaveStatus.NOTHING_TO_SAVE)
        if not self.is_editable:
            logger.warning(
                "Save refused for batch %s: not editable for role %s",
                self.group_key,
                self.role,
            )
            return SaveResult(status=SaveStatus.NOT_EDITABLE, change_set=change_set)

        self._state = SessionState.SAVING
        logger.info(
            "Saving %d changed rows for batch %s", len(change_set), self.group_key
        )
        try:
            await persister.submit(self.group_key, change_set)
        except SaveError as exc:
            self._restore_after_failed_save()
            logger.warning("Save failed for batch %s: %s", self.group_key, exc)
            raise
        except Exception as exc:
            self._restore_after_failed_save()
            logger.error("Persister error for batch %s: %s", self.group_key, exc)
            raise SaveError(str(exc) or type(exc).__name__, group_key=self.group_key) from exc
        except BaseException:
            # cancelled while pending
            self._restore_after_failed_save()
            raise

        logger.info("Saved %d rows for batch %s", len(change_set), self.group_key)
        self.retire()
        return SaveResult(status=SaveStatus.SAVED, change_set=change_set)

    def retire(self) -> None:
        """Discard all session state; the session cannot be used afterwards."""
        if self._state is SessionState.RETIRED:
            return
        self._undo.clear()
        self._redo.clear()
        self._baseline = ()
        self._working = ()
        self._state = SessionState.RETIRED
        logger.info("Edit session %s for batch %s retired", self.session_id, self.group_key)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_active(self) -> None:
        if self._state is SessionState.RETIRED:
            raise SessionRetiredError(self.group_key)

    def _ensure_mutable(self) -> None:
        self._ensure_active()
        if self._state is SessionState.SAVING:
            raise SaveInProgressError(self.group_key)

    def _restore_after_failed_save(self) -> None:
        # a session discarded while its save was pending stays retired
        if self._state is SessionState.SAVING:
            self._state = SessionState.DIRTY

    def _mark_dirty_if_changed(self) -> None:
        if self._state is SessionState.LOADED and self.diff():
            self._state = SessionState.DIRTY
