"""Dense chart series from sparse daily averages.

Turns the weighted daily averages into one :class:`TrendPoint` per calendar
day over the display window.  Low-confidence days (too few reporting nodes)
are discarded and reporting gaps are forward-filled so the chart never dips
because a node was silent.

The sources a series can come from are tried in order through
:func:`resolve_series`; the tag of the strategy that produced the series is
reported to callers as the data source.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime, timedelta, timezone
from typing import Protocol

from capacity_analytics.data.models import (
    DailyGlobalAverage,
    DataSource,
    TrendPoint,
    TrendSeries,
)

logger = logging.getLogger(__name__)

# A day is kept only when at least this share of the best observed node
# count reported it...
MIN_NODE_RATIO = 0.5
# ...and never with fewer nodes than this.
MIN_NODES_FLOOR = 3
MAX_DISPLAY_DAYS = 180
FALLBACK_DAYS = 30

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def format_day_label(day: date) -> str:
    """Short chart label: ``3 Jan``."""
    return f"{day.day} {_MONTHS[day.month - 1]}"


def _daterange(start: date, end: date) -> Iterable[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def min_nodes_for(max_node_count: int) -> int:
    """Minimum contributing nodes for a day to count as complete."""
    return max(MIN_NODES_FLOOR, int(max_node_count * MIN_NODE_RATIO))


def select_display_days(
    averages: Mapping[date, DailyGlobalAverage], today: date
) -> list[date]:
    """Apply the completeness filter and the recency window.

    Both steps prefer availability over strictness: if the completeness
    filter rejects every day all days are used, and if no valid day falls
    within the last :data:`MAX_DISPLAY_DAYS` days the most recent
    :data:`MAX_DISPLAY_DAYS` valid days are used instead.
    """
    if not averages:
        return []

    sorted_days = sorted(averages)
    max_node_count = max(avg.contributing_node_count for avg in averages.values())
    min_nodes = min_nodes_for(max_node_count)

    valid_days = [
        day for day in sorted_days
        if averages[day].contributing_node_count >= min_nodes
    ]
    if not valid_days:
        logger.debug(
            "Completeness filter (min %d nodes) rejected all %d days; using all",
            min_nodes, len(sorted_days),
        )
        valid_days = sorted_days

    cutoff = today - timedelta(days=MAX_DISPLAY_DAYS)
    recent_days = [day for day in valid_days if day >= cutoff]
    if not recent_days:
        recent_days = valid_days[-MAX_DISPLAY_DAYS:]

    return recent_days


def _mean_storage(readings: Sequence[float] | None) -> float | None:
    if not readings:
        return None
    return round(sum(readings) / len(readings), 1)


def densify_series(
    averages: Mapping[date, DailyGlobalAverage],
    storage_by_day: Mapping[date, Sequence[float]] | None = None,
    today: date | None = None,
) -> TrendSeries:
    """Build the gap-free weighted series.

    One point is emitted per calendar day from the first to the last
    retained day.  A day with data sets the "last known good" values; a gap
    day repeats them.  Storage follows the same rule but stays ``None``
    until the first retained day that has storage readings.

    Returns an empty series (no points, no period) when nothing is left.
    """
    today = today or utc_today()
    storage_by_day = storage_by_day or {}

    retained = select_display_days(averages, today)
    if not retained:
        return TrendSeries(data_source="rrd_weighted")

    retained_set = set(retained)
    first = averages[retained[0]]
    last_cpu = first.cpu_percent
    last_ram = first.ram_percent
    last_storage: float | None = None

    points: list[TrendPoint] = []
    for day in _daterange(retained[0], retained[-1]):
        if day in retained_set:
            data = averages[day]
            last_cpu = data.cpu_percent
            last_ram = data.ram_percent
            storage = _mean_storage(storage_by_day.get(day))
            if storage is not None:
                last_storage = storage

        points.append(
            TrendPoint(
                label=format_day_label(day),
                day=day,
                cpu_percent=last_cpu,
                ram_percent=last_ram,
                storage_percent=last_storage,
            )
        )

    return TrendSeries(
        points=points,
        period_start=retained[0],
        period_end=retained[-1],
        data_source="rrd_weighted",
    )


def flat_series(
    cpu_percent: float,
    ram_percent: float,
    storage_percent: float,
    today: date | None = None,
    days: int = FALLBACK_DAYS,
) -> TrendSeries:
    """A flat series of *days* points ending *today* at the current values."""
    today = today or utc_today()
    start = today - timedelta(days=days - 1)
    cpu = round(cpu_percent, 1)
    ram = round(ram_percent, 1)
    storage = round(storage_percent, 1)

    points = [
        TrendPoint(
            label=format_day_label(day),
            day=day,
            cpu_percent=cpu,
            ram_percent=ram,
            storage_percent=storage,
        )
        for day in _daterange(start, today)
    ]
    return TrendSeries(
        points=points, period_start=start, period_end=today, data_source="fallback"
    )


# ---------------------------------------------------------------------------
# Data-source strategies
# ---------------------------------------------------------------------------

class SeriesStrategy(Protocol):
    """One way of producing the chart series."""

    name: DataSource

    def try_produce(self) -> TrendSeries | None:
        """Return a non-empty series, or ``None`` to defer to the next source."""
        ...


class RrdWeightedStrategy:
    """Series built from historical samples, capacity-weighted."""

    name: DataSource = "rrd_weighted"

    def __init__(
        self,
        averages: Mapping[date, DailyGlobalAverage],
        storage_by_day: Mapping[date, Sequence[float]] | None = None,
        today: date | None = None,
    ) -> None:
        self._averages = averages
        self._storage_by_day = storage_by_day
        self._today = today

    def try_produce(self) -> TrendSeries | None:
        series = densify_series(self._averages, self._storage_by_day, self._today)
        return series if series.points else None


class FlatFallbackStrategy:
    """Degraded series repeating the current instantaneous utilization."""

    name: DataSource = "fallback"

    def __init__(
        self,
        cpu_percent: float,
        ram_percent: float,
        storage_percent: float,
        today: date | None = None,
    ) -> None:
        self._cpu = cpu_percent
        self._ram = ram_percent
        self._storage = storage_percent
        self._today = today

    def try_produce(self) -> TrendSeries | None:
        return flat_series(self._cpu, self._ram, self._storage, self._today)


def resolve_series(strategies: Iterable[SeriesStrategy]) -> TrendSeries:
    """Return the series of the first strategy that produces one.

    When every strategy defers the result is an empty series tagged
    ``"empty"``.
    """
    for strategy in strategies:
        series = strategy.try_produce()
        if series is not None:
            series.data_source = strategy.name
            return series
        logger.debug("Series source %s produced nothing", strategy.name)
    return TrendSeries(data_source="empty")
