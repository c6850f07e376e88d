"""Change-set computation between a baseline and a working copy.

Only rows that changed are emitted, and within a row only the fields that
changed.  An empty change-set means there is nothing to save.
"""

from __future__ import annotations

from collections.abc import Sequence

from marks_editor.schemas.marks import MarkUpdate, StudentMark


def normalize_comment(comment: str | None) -> str:
    """Treat ``None`` and ``""`` as the same "no comment" value."""
    return comment or ""


def scores_equal(left: float | None, right: float | None) -> bool:
    """Compare two optional scores numerically (``None`` only equals ``None``)."""
    if left is None or right is None:
        return left is None and right is None
    return float(left) == float(right)


def diff_record(original: StudentMark, current: StudentMark) -> MarkUpdate | None:
    """Return the update for a single row, or ``None`` when nothing changed.

    A comment cleared locally is sent as ``""`` so the server clears it;
    an omitted field always means "leave untouched".
    """
    changes: dict = {}
    if not scores_equal(original.score, current.score):
        changes["score"] = current.score
    if normalize_comment(original.comment) != normalize_comment(current.comment):
        changes["comment"] = normalize_comment(current.comment)

    if not changes:
        return None
    return MarkUpdate(id=current.id, **changes)


def compute(
    baseline: Sequence[StudentMark],
    working: Sequence[StudentMark],
) -> list[MarkUpdate]:
    """Compute the minimal change-set that turns ``baseline`` into ``working``.

    Args:
        baseline: Records as last returned by the server.
        working: Records as currently edited, index-aligned with baseline.

    Returns:
        Updates in row order; empty when every row matches.

    Raises:
        ValueError: If the sequences differ in length or a row's id does
            not match between them.
    """
    if len(baseline) != len(working):
        raise ValueError(
            f"Working copy has {len(working)} rows but baseline has {len(baseline)}"
        )

    updates: list[MarkUpdate] = []
    for index, (original, current) in enumerate(zip(baseline, working)):
        if original.id != current.id:
            raise ValueError(
                f"Row {index} id mismatch: baseline {original.id!r}, "
                f"working {current.id!r}"
            )
        update = diff_record(original, current)
        if update is not None:
            updates.append(update)
    return updates
