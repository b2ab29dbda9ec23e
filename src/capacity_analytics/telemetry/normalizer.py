"""Historical sample normalization.

Converts one raw history point into a :class:`NormalizedSample` holding a
UTC calendar day and percentages in [0, 100].  The metrics store mixes unit
conventions (CPU as a 0-1 ratio, memory either as ``memused``/``memtotal``
or ``mem``/``maxmem``, storage as ``used``/``total``) and the point shape
depends on whether it describes a node or a storage, so the input is a
tagged :data:`HistorySample` and each source has its own validity rules.

Nothing in this module raises for malformed input: an unusable field is
simply "no reading", tallied by reason when diagnostics are supplied.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Any

from capacity_analytics.data.models import (
    HistorySample,
    NodeCapacity,
    NodeSample,
    NormalizedSample,
    RawSample,
    StageDiagnostics,
    StorageSample,
)
from capacity_analytics.exceptions import MalformedSample


def _to_float(value: Any, field: str) -> float:
    """Coerce *value* to a finite float or raise :class:`MalformedSample`."""
    if value is None:
        raise MalformedSample(f"{field} missing")
    if isinstance(value, bool):
        raise MalformedSample(f"{field} is a boolean")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise MalformedSample(f"{field} is not numeric: {value!r}") from None
    if not math.isfinite(number):
        raise MalformedSample(f"{field} is not finite")
    return number


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _reject(diagnostics: StageDiagnostics | None, reason: str) -> None:
    if diagnostics is not None:
        diagnostics.reject(reason)


def _accept(diagnostics: StageDiagnostics | None) -> None:
    if diagnostics is not None:
        diagnostics.accept()


def day_key_for(time_value: Any) -> date | None:
    """UTC calendar date of an epoch-seconds timestamp, or ``None``."""
    try:
        seconds = _to_float(time_value, "time")
    except MalformedSample:
        return None
    if seconds <= 0:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).date()
    except (OverflowError, OSError, ValueError):
        return None


def normalize_cpu(
    raw: RawSample, diagnostics: StageDiagnostics | None = None
) -> float | None:
    """CPU percent from a 0-1 ratio.

    Negative and non-finite values are dropped rather than clamped: they
    indicate a bad reading, not an idle host.
    """
    if raw.cpu is None:
        _reject(diagnostics, "cpu_missing")
        return None
    try:
        ratio = _to_float(raw.cpu, "cpu")
    except MalformedSample:
        _reject(diagnostics, "cpu_invalid")
        return None
    if ratio < 0:
        _reject(diagnostics, "cpu_invalid")
        return None
    _accept(diagnostics)
    return max(0.0, min(100.0, ratio * 100))


def normalize_node_ram(
    raw: RawSample,
    capacity: NodeCapacity,
    diagnostics: StageDiagnostics | None = None,
) -> float | None:
    """RAM percent of a node sample.

    ``memused``/``memtotal`` win over the legacy ``mem``/``maxmem`` pair; the
    node's installed memory is the last resort for the total.
    """
    used_value = _first_present(raw.memused, raw.mem)
    total_value = _first_present(raw.memtotal, raw.maxmem, capacity.max_mem_bytes)
    try:
        used = _to_float(used_value, "memused")
        total = _to_float(total_value, "memtotal")
    except MalformedSample:
        _reject(diagnostics, "ram_missing")
        return None
    if used <= 0 or total <= 0:
        _reject(diagnostics, "ram_missing")
        return None

    percent = used / total * 100
    if not math.isfinite(percent) or percent < 0 or percent > 100:
        _reject(diagnostics, "ram_out_of_range")
        return None
    _accept(diagnostics)
    return percent


def normalize_storage(
    raw: RawSample,
    live_total_bytes: float,
    diagnostics: StageDiagnostics | None = None,
) -> float | None:
    """Storage percent of a storage sample.

    A point without a usable total is read against the storage's current
    capacity; a point without a usable ``used`` value is a gap, never 0%.
    """
    try:
        used = _to_float(raw.used, "used")
    except MalformedSample:
        _reject(diagnostics, "storage_missing")
        return None

    try:
        total = _to_float(raw.total, "total")
    except MalformedSample:
        total = 0.0
    if total <= 0:
        total = live_total_bytes

    if used <= 0 or total <= 0:
        _reject(diagnostics, "storage_missing")
        return None

    percent = used / total * 100
    if not math.isfinite(percent) or percent > 100:
        _reject(diagnostics, "storage_out_of_range")
        return None
    _accept(diagnostics)
    return percent


def normalize_sample(
    sample: HistorySample, diagnostics: StageDiagnostics | None = None
) -> NormalizedSample | None:
    """Normalize one tagged history sample.

    Returns ``None`` when the sample has no usable timestamp; otherwise a
    :class:`NormalizedSample` whose metric fields are ``None`` where the
    point carried no valid reading.
    """
    day = day_key_for(sample.raw.time)
    if day is None:
        _reject(diagnostics, "missing_time")
        return None

    if isinstance(sample, NodeSample):
        return NormalizedSample(
            day_key=day,
            cpu_percent=normalize_cpu(sample.raw, diagnostics),
            ram_percent=normalize_node_ram(sample.raw, sample.capacity, diagnostics),
        )
    if isinstance(sample, StorageSample):
        return NormalizedSample(
            day_key=day,
            storage_percent=normalize_storage(
                sample.raw, sample.live_total_bytes, diagnostics
            ),
        )
    _reject(diagnostics, "unknown_source")
    return None
