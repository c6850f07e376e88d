"""In-process registry of open edit sessions.

Holds sessions by id for the controller routes.  Nothing is persisted:
a session lives until it is retired (saved or discarded), sits idle past
``Settings.session_idle_timeout_seconds``, or the process stops.

Clients are not guaranteed to send ``DELETE /sessions/{id}`` when a user
navigates away, so idle sessions are retired by :meth:`SessionStore.prune`
and on lookup.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from marks_editor.config import get_settings
from marks_editor.exceptions import SessionNotFoundError
from marks_editor.services.edit_session import EditSession

logger = logging.getLogger(__name__)


class SessionStore:
    """Map of session id → :class:`EditSession` with idle expiry.

    Args:
        idle_timeout_seconds: Seconds without a lookup after which a session
            is retired; defaults to ``Settings.session_idle_timeout_seconds``.
        clock: Monotonic time source, replaceable in tests.
    """

    def __init__(
        self,
        idle_timeout_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sessions: dict[str, EditSession] = {}
        self._last_seen: dict[str, float] = {}
        self._idle_timeout: float = (
            idle_timeout_seconds
            if idle_timeout_seconds is not None
            else get_settings().session_idle_timeout_seconds
        )
        self._clock = clock

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def idle_timeout_seconds(self) -> float:
        return self._idle_timeout

    def add(self, session: EditSession) -> EditSession:
        self._sessions[session.session_id] = session
        self._last_seen[session.session_id] = self._clock()
        return session

    def get(self, session_id: str) -> EditSession:
        """Return the open session with ``session_id`` and mark it as used.

        Retired and idle-expired sessions are dropped on lookup and
        reported as missing.

        Raises:
            SessionNotFoundError: If no open session has that id.
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        now = self._clock()
        if not session.is_retired and self._is_idle(session, now):
            logger.info("Edit session %s expired after inactivity", session_id)
            session.retire()
        if session.is_retired:
            self._forget(session_id)
            raise SessionNotFoundError(session_id)
        self._last_seen[session_id] = now
        return session

    def discard(self, session_id: str) -> None:
        """Retire and forget a session.

        Raises:
            SessionNotFoundError: If no session has that id.
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        self._forget(session_id)
        session.retire()

    def prune(self) -> int:
        """Drop retired sessions and retire idle ones; returns how many went."""
        now = self._clock()
        removed = 0
        for sid, session in list(self._sessions.items()):
            if not session.is_retired and self._is_idle(session, now):
                session.retire()
            if session.is_retired:
                self._forget(sid)
                removed += 1
        if removed:
            logger.debug("Pruned %d retired or idle sessions", removed)
        return removed

    def close(self) -> None:
        """Retire every open session (used on shutdown)."""
        for session in self._sessions.values():
            session.retire()
        self._sessions.clear()
        self._last_seen.clear()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_idle(self, session: EditSession, now: float) -> bool:
        # a pending save keeps its session alive
        if session.is_saving:
            return False
        last_seen = self._last_seen.get(session.session_id, now)
        return now - last_seen > self._idle_timeout

    def _forget(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._last_seen.pop(session_id, None)
