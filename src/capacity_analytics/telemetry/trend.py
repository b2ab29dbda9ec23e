"""Direction indicator for a utilization series."""

from __future__ import annotations

from collections.abc import Sequence


def calculate_trend(values: Sequence[float]) -> float:
    """Return ``mean(second half) - mean(first half)`` in percentage points.

    The list is split at ``len // 2``; for an odd length the extra value
    falls in the second half.  Fewer than two values give ``0``.  The
    result is rounded to one decimal.

    This is a coarse midpoint comparison, not a regression: it only has to
    drive an up / down indicator and stays stable on noisy readings.
    """
    if len(values) < 2:
        return 0.0

    mid = len(values) // 2
    first_half = values[:mid]
    second_half = values[mid:]

    avg_first = sum(first_half) / len(first_half)
    avg_second = sum(second_half) / len(second_half)

    return round(avg_second - avg_first, 1)
