"""Single-field edits on a ``StudentMark``.

Each function returns a new record and never mutates its input, so a
rejected edit leaves the caller's record exactly as it was.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from marks_editor.exceptions import ValidationError
from marks_editor.schemas.marks import StudentMark
from marks_editor.services.grade_classifier import classify

logger = logging.getLogger(__name__)


def parse_score(raw_value: Any, max_score: float) -> float | None:
    """Parse raw input into a score within ``[0, max_score]``.

    Args:
        raw_value: Text from an input box, a number, or ``None``.
        max_score: Upper bound for the batch.

    Returns:
        The parsed score, or ``None`` for blank input (clears the score).

    Raises:
        ValidationError: If the input is not a finite number, is negative,
            or exceeds ``max_score``.
    """
    if raw_value is None:
        return None
    if isinstance(raw_value, str):
        raw_value = raw_value.strip()
        if raw_value == "":
            return None
    if isinstance(raw_value, bool):
        raise ValidationError(
            f"Score must be a number, got {raw_value!r}", field="score", value=raw_value
        )

    try:
        score = float(raw_value)
    except (TypeError, ValueError):
        raise ValidationError(
            f"Score must be a number, got {raw_value!r}", field="score", value=raw_value
        ) from None

    if not math.isfinite(score):
        raise ValidationError(
            f"Score must be a finite number, got {raw_value!r}",
            field="score",
            value=raw_value,
        )
    if score < 0:
        raise ValidationError(
            f"Score cannot be negative (got {score:g})", field="score", value=raw_value
        )
    if score > max_score:
        raise ValidationError(
            f"Score cannot exceed the maximum of {max_score:g} (got {score:g})",
            field="score",
            value=raw_value,
        )
    return score


def set_score(record: StudentMark, raw_value: Any, max_score: float) -> StudentMark:
    """Return a copy of ``record`` with a new score and refreshed grade fields.

    Blank input clears the score, the grade, and the below-half flag.

    Raises:
        ValidationError: If ``raw_value`` is not a valid score for the batch.
    """
    score = parse_score(raw_value, max_score)
    grade, below_half = classify(score, max_score)
    return record.model_copy(
        update={"score": score, "grade": grade, "is_below_half": below_half}
    )


def set_comment(record: StudentMark, text: str | None) -> StudentMark:
    """Return a copy of ``record`` with ``comment`` replaced."""
    if text is not None and not isinstance(text, str):
        text = str(text)
    return record.model_copy(update={"comment": text})


def refresh_derived(record: StudentMark, max_score: float) -> StudentMark:
    """Recompute ``grade`` and ``is_below_half`` from the record's own score.

    Used when records arrive from the marks API so derived fields never
    disagree with the score they are computed from.
    """
    grade, below_half = classify(record.score, max_score)
    if grade == record.grade and below_half == record.is_below_half:
        return record
    logger.debug(
        "Refreshed derived fields for mark %s: %r/%s -> %r/%s",
        record.id,
        record.grade,
        record.is_below_half,
        grade,
        below_half,
    )
    return record.model_copy(update={"grade": grade, "is_below_half": below_half})
