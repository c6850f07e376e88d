"""Edit-window access policy.

Decides whether a caller may change a batch right now.  The role is passed
in explicitly by the caller; nothing here reads ambient user state.
"""

from __future__ import annotations

from marks_editor.config import get_settings
from marks_editor.schemas.marks import BatchInfo


def is_editable(role: str | None, batch: BatchInfo) -> bool:
    """Return whether ``role`` may edit ``batch``.

    Principals may always edit.  Everyone else follows the server-computed
    ``can_edit`` flag; ``time_left_hours`` is informational and never
    consulted here.
    """
    if role is not None and role == get_settings().principal_role:
        return True
    return bool(batch.can_edit)
