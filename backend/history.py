# history.py
from dataclasses import dataclass
from typing import Iterable, Optional


def round_half_up(numerator: int, denominator: int) -> int:
    """Integer rounding of numerator/denominator with .5 rounded up (both >= 0)."""
    return (2 * numerator + denominator) // (2 * denominator)


def percentage(score: int, total: int) -> int:
    return round_half_up(100 * score, total)


@dataclass(frozen=True)
class AttemptStats:
    count: int
    mean: Optional[int] = None
    best: Optional[int] = None


def _percentage_of(attempt) -> int:
    if isinstance(attempt, dict):
        return int(attempt["percentage"])
    return int(attempt.percentage)


def aggregate(attempts: Iterable) -> AttemptStats:
    """Count, rounded mean and best percentage over attempts; mean/best are None when empty."""
    values = [_percentage_of(a) for a in attempts]
    if not values:
        return AttemptStats(count=0)
    return AttemptStats(
        count=len(values),
        mean=round_half_up(sum(values), len(values)),
        best=max(values),
    )


# Thresholds used by the results screen.
BANDS = (
    (90, "excellent"),
    (70, "good"),
    (50, "sufficient"),
)


def grade_band(pct: Optional[int]) -> Optional[str]:
    if pct is None:
        return None
    for threshold, label in BANDS:
        if pct >= threshold:
            return label
    return "needs_study"
