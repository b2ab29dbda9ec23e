"""Cluster health score and threshold alerts."""

from __future__ import annotations

from capacity_analytics.data.models import (
    HealthAlert,
    HealthReport,
    ResourceThresholds,
    ThresholdLevel,
)

# (above, penalty) pairs, checked top-down; only the first match applies.
COMPUTE_PENALTIES = ((90, 30), (80, 15), (70, 5))
STORAGE_PENALTIES = ((90, 20), (80, 10))


def _penalty(value: float, tiers: tuple[tuple[int, int], ...]) -> int:
    for above, penalty in tiers:
        if value > above:
            return penalty
    return 0


def health_score(cpu_percent: float, ram_percent: float, storage_percent: float) -> int:
    score = 100
    score -= _penalty(cpu_percent, COMPUTE_PENALTIES)
    score -= _penalty(ram_percent, COMPUTE_PENALTIES)
    score -= _penalty(storage_percent, STORAGE_PENALTIES)
    return max(0, min(100, score))


def _alert(resource: str, value: float, level: ThresholdLevel) -> HealthAlert | None:
    if value >= level.critical:
        return HealthAlert(resource=resource, level="critical", value=value)
    if value >= level.warning:
        return HealthAlert(resource=resource, level="warning", value=value)
    return None


def evaluate_health(
    cpu_percent: float,
    ram_percent: float,
    storage_percent: float,
    thresholds: ResourceThresholds | None = None,
) -> HealthReport:
    """Score current utilization and list resources past their thresholds."""
    thresholds = thresholds or ResourceThresholds()
    cpu = round(cpu_percent, 1)
    ram = round(ram_percent, 1)
    storage = round(storage_percent, 1)

    alerts = [
        alert
        for alert in (
            _alert("cpu", cpu, thresholds.cpu),
            _alert("ram", ram, thresholds.ram),
            _alert("storage", storage, thresholds.storage),
        )
        if alert is not None
    ]

    return HealthReport(
        score=health_score(cpu, ram, storage),
        cpu_percent=cpu,
        ram_percent=ram,
        storage_percent=storage,
        alerts=alerts,
    )
