"""Per-node and per-storage daily grouping of history samples.

Readings are only grouped here, never averaged: averaging is deferred to
the weighted averager so that the same grouping can be re-weighted.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from capacity_analytics.data.models import (
    DayReadings,
    NodeCapacity,
    NodeSample,
    RawSample,
    StageDiagnostics,
    StorageSample,
)
from capacity_analytics.telemetry.normalizer import normalize_sample


def aggregate_node_days(
    samples: Iterable[RawSample],
    capacity: NodeCapacity,
) -> tuple[dict[date, DayReadings], StageDiagnostics]:
    """Group one node's history by UTC calendar day.

    Every valid CPU and RAM reading of a day is appended to that day's
    lists.  Days left with no reading at all are removed, so the size of
    the returned mapping is the number of days with data.
    """
    diagnostics = StageDiagnostics(stage="node_samples")
    by_day: dict[date, DayReadings] = {}

    for raw in samples:
        normalized = normalize_sample(
            NodeSample(raw=raw, capacity=capacity), diagnostics
        )
        if normalized is None:
            continue
        day = by_day.setdefault(normalized.day_key, DayReadings())
        if normalized.cpu_percent is not None:
            day.cpu.append(normalized.cpu_percent)
        if normalized.ram_percent is not None:
            day.ram.append(normalized.ram_percent)

    for day_key in [k for k, v in by_day.items() if v.is_empty]:
        del by_day[day_key]

    return by_day, diagnostics


def aggregate_storage_days(
    samples: Iterable[RawSample],
    live_total_bytes: float,
    into: dict[date, list[float]] | None = None,
) -> tuple[dict[date, list[float]], StageDiagnostics]:
    """Group one storage's history into per-day usage percentages.

    Pass *into* to accumulate several storages into one mapping; the
    cluster-wide storage series is the per-day mean of all of them.
    """
    diagnostics = StageDiagnostics(stage="storage_samples")
    by_day = into if into is not None else {}

    for raw in samples:
        normalized = normalize_sample(
            StorageSample(raw=raw, live_total_bytes=live_total_bytes), diagnostics
        )
        if normalized is None or normalized.storage_percent is None:
            continue
        by_day.setdefault(normalized.day_key, []).append(normalized.storage_percent)

    return by_day, diagnostics
