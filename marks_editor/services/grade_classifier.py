"""Grade classification for raw scores.

Maps a score and the batch maximum to a letter grade and the below-half
flag.  Pure functions only; every derived field on a ``StudentMark`` comes
from here.

Boundaries are compared in ``Decimal`` without dividing, so a score of
exactly 80% of a fractional maximum (16.08 of 20.1) is still an A.
"""

from __future__ import annotations

from decimal import Decimal

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# (minimum percentage, grade) evaluated top-down, first match wins.
GRADE_THRESHOLDS: tuple[tuple[float, str], ...] = (
    (80.0, "A"),
    (70.0, "B"),
    (60.0, "C"),
    (50.0, "D"),
    (40.0, "E"),
)
FAILING_GRADE = "F"
BELOW_HALF_RATIO = 0.5

_HUNDRED = Decimal(100)


def _exact(value: float) -> Decimal:
    # str() gives the shortest repr, i.e. the number the user typed
    return Decimal(str(value))


def grade_for_percentage(percentage: float) -> str:
    """Return the letter grade for a percentage (lower bounds inclusive)."""
    for minimum, grade in GRADE_THRESHOLDS:
        if percentage >= minimum:
            return grade
    return FAILING_GRADE


def grade_for_score(score: float, max_score: float) -> str:
    """Return the letter grade for ``score`` out of ``max_score``.

    Equivalent to ``grade_for_percentage(score / max_score * 100)`` but
    exact at every threshold.
    """
    scaled = _exact(score) * _HUNDRED
    maximum = _exact(max_score)
    for minimum, grade in GRADE_THRESHOLDS:
        if scaled >= _exact(minimum) * maximum:
            return grade
    return FAILING_GRADE


def is_below_half(score: float | None, max_score: float) -> bool:
    """Return True when ``score`` is strictly under half of ``max_score``."""
    if score is None:
        return False
    return _exact(score) < _exact(max_score) * _exact(BELOW_HALF_RATIO)


def classify(score: float | None, max_score: float) -> tuple[str, bool]:
    """Derive ``(grade, is_below_half)`` for a score.

    Args:
        score: Raw score, or ``None`` when no score is entered.
        max_score: Maximum attainable score for the batch (positive).

    Returns:
        ``("", False)`` for a missing score; otherwise the grade letter and
        whether the score falls below half of ``max_score``.

    Raises:
        ValueError: If ``max_score`` is not positive.
    """
    if max_score <= 0:
        raise ValueError(f"max_score must be positive, got {max_score!r}")
    if score is None:
        return "", False

    return grade_for_score(score, max_score), is_below_half(score, max_score)
