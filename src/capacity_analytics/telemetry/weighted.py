"""Cluster-wide capacity-weighted daily averages.

Combines the per-node daily groupings of every node of every connection
into one utilization figure per day, where a node's contribution is scaled
by its physical capacity (cores for CPU, bytes for RAM).

Completeness is deliberately *not* judged here: a day reported by a single
node still produces an average.  The densifier filters low-confidence days
using ``contributing_node_count``.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date

from capacity_analytics.data.models import (
    DailyGlobalAverage,
    DayReadings,
    NodeCapacity,
    NodeKey,
    StageDiagnostics,
)

# Nodes whose mean RAM for a day is below this percentage are treated as
# empty, decommissioned or freshly joined and left out of that day.
MIN_NODE_RAM_PERCENT = 5.0


def _mean(values: list[float]) -> float:
    return sum(values) / len(values)


def compute_global_averages(
    nodes_by_day: Mapping[NodeKey, Mapping[date, DayReadings]],
    capacities: Mapping[NodeKey, NodeCapacity],
) -> tuple[dict[date, DailyGlobalAverage], StageDiagnostics]:
    """Compute one weighted average per day across all nodes.

    For each day, every node with readings contributes
    ``mean(cpu) * max_cpu_cores`` to the CPU numerator and ``max_cpu_cores``
    to its denominator (likewise for RAM with ``max_mem_bytes``).  CPU and
    RAM are independent: a node lacking CPU readings still counts for RAM.
    A node below :data:`MIN_NODE_RAM_PERCENT` mean RAM (with at least one
    RAM reading) is excluded from both sums for that day.  Days with no
    weighted signal at all are not emitted.
    """
    diagnostics = StageDiagnostics(stage="weighted_average")

    all_days: set[date] = set()
    for per_day in nodes_by_day.values():
        all_days.update(day for day, readings in per_day.items() if not readings.is_empty)

    result: dict[date, DailyGlobalAverage] = {}

    for day in sorted(all_days):
        cpu_weighted = 0.0
        cpu_capacity = 0.0
        ram_weighted = 0.0
        ram_capacity = 0.0
        nodes_with_cpu = 0
        nodes_with_ram = 0

        for key, per_day in nodes_by_day.items():
            readings = per_day.get(day)
            capacity = capacities.get(key)
            if readings is None or capacity is None:
                continue

            ram_avg = _mean(readings.ram) if readings.ram else 0.0
            if readings.ram and ram_avg < MIN_NODE_RAM_PERCENT:
                diagnostics.reject("near_idle")
                continue

            if readings.cpu:
                cpu_weighted += _mean(readings.cpu) * capacity.max_cpu_cores
                cpu_capacity += capacity.max_cpu_cores
                nodes_with_cpu += 1

            if readings.ram:
                ram_weighted += ram_avg * capacity.max_mem_bytes
                ram_capacity += capacity.max_mem_bytes
                nodes_with_ram += 1

            diagnostics.accept()

        if cpu_weighted == 0 and ram_weighted == 0:
            diagnostics.reject("no_signal_day")
            continue

        global_cpu = cpu_weighted / cpu_capacity if cpu_capacity > 0 else 0.0
        global_ram = ram_weighted / ram_capacity if ram_capacity > 0 else 0.0

        result[day] = DailyGlobalAverage(
            day=day,
            cpu_percent=round(global_cpu, 1),
            ram_percent=round(global_ram, 1),
            contributing_node_count=max(nodes_with_cpu, nodes_with_ram),
        )

    return result, diagnostics
