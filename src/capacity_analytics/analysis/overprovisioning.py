"""Overprovisioning ratios and per-guest rightsizing.

Compares what running guests have been allocated against the physical
capacity of the online nodes and against what the guests actually use,
and recommends a smaller allocation for guests whose working set is far
below their reservation.  Everything here works on the current inventory
snapshot, never on history.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence

from capacity_analytics.data.models import (
    GIB,
    AllocationBlock,
    GuestSnapshot,
    NodeKey,
    NodeOverprovisioning,
    NodeSnapshot,
    OverprovisioningReport,
    RightsizingCandidate,
    RightsizingSavings,
)

CPU_HEADROOM = 1.3
RAM_HEADROOM = 1.2
MIN_CPU_SAVINGS = 2
MIN_RAM_SAVINGS_GB = 2
# A saved vCPU outranks a saved GB of RAM by this factor.
CPU_PRIORITY_WEIGHT = 10
MAX_CANDIDATES = 10


def _recommended(guest: GuestSnapshot) -> tuple[int, int]:
    """Recommended vCPUs and GB of RAM for *guest*."""
    ram_allocated_gb = guest.ram_allocated_bytes / GIB
    recommended_cpu = max(
        1, math.ceil(guest.cpu_allocated_cores * (guest.cpu_percent / 100) * CPU_HEADROOM)
    )
    recommended_ram_gb = max(
        1, math.ceil(ram_allocated_gb * (guest.ram_percent / 100) * RAM_HEADROOM)
    )
    return recommended_cpu, recommended_ram_gb


def _raw_savings(guest: GuestSnapshot) -> tuple[float, float]:
    """Unrounded (vCPU, GB) savings; thresholds and ranking use these."""
    recommended_cpu, recommended_ram_gb = _recommended(guest)
    return (
        max(0.0, guest.cpu_allocated_cores - recommended_cpu),
        max(0.0, guest.ram_allocated_bytes / GIB - recommended_ram_gb),
    )


def recommend_rightsizing(guest: GuestSnapshot) -> RightsizingCandidate:
    """Size a guest to its observed working set plus headroom.

    CPU gets 30% headroom and RAM 20%; both recommendations are at least 1.
    Savings never go negative.
    """
    recommended_cpu, recommended_ram_gb = _recommended(guest)
    cpu_savings, ram_savings_gb = _raw_savings(guest)

    return RightsizingCandidate(
        vmid=guest.vmid or guest.id.rsplit(":", 1)[-1],
        name=guest.name,
        node=guest.node,
        cpu_allocated=guest.cpu_allocated_cores,
        cpu_used_pct=guest.cpu_percent,
        ram_allocated_gb=round(guest.ram_allocated_bytes / GIB, 1),
        ram_used_pct=guest.ram_percent,
        recommended_cpu=recommended_cpu,
        recommended_ram_gb=recommended_ram_gb,
        potential_savings=RightsizingSavings(
            cpu=cpu_savings, ram_gb=round(ram_savings_gb, 1)
        ),
    )


def _priority(savings: tuple[float, float]) -> float:
    cpu, ram_gb = savings
    return cpu * CPU_PRIORITY_WEIGHT + ram_gb


def rank_rightsizing_candidates(
    guests: Iterable[GuestSnapshot], limit: int = MAX_CANDIDATES
) -> list[RightsizingCandidate]:
    """Running guests worth resizing, highest priority first.

    A guest qualifies when it would free at least :data:`MIN_CPU_SAVINGS`
    vCPUs or :data:`MIN_RAM_SAVINGS_GB` GB.  Both checks and the ordering
    use the unrounded savings.
    """
    scored = [
        (_raw_savings(guest), guest) for guest in guests if guest.is_running
    ]
    scored = [
        (savings, guest) for savings, guest in scored
        if savings[0] >= MIN_CPU_SAVINGS or savings[1] >= MIN_RAM_SAVINGS_GB
    ]
    scored.sort(key=lambda item: _priority(item[0]), reverse=True)
    return [recommend_rightsizing(guest) for _, guest in scored[:limit]]


def allocation_efficiency(
    cpu_used_percent: float,
    ram_used_percent: float,
    cpu_allocated: float,
    cpu_physical: float,
    ram_allocated: float,
    ram_physical: float,
) -> int:
    """Cluster efficiency score (0-100) shown next to the KPIs.

    For each resource, actual usage is compared to the share of capacity
    handed out to guests, capped at 100; nothing allocated counts as fully
    efficient.  The score is the rounded mean of CPU and RAM.
    """

    def _one(used_percent: float, allocated: float, physical: float) -> float:
        if allocated <= 0 or physical <= 0:
            return 100.0
        allocated_percent = allocated / physical * 100
        return min(100.0, used_percent / allocated_percent * 100)

    cpu_eff = _one(cpu_used_percent, cpu_allocated, cpu_physical)
    ram_eff = _one(ram_used_percent, ram_allocated, ram_physical)
    return round((cpu_eff + ram_eff) / 2)


def _per_node(
    nodes: Mapping[NodeKey, NodeSnapshot], running: Sequence[GuestSnapshot]
) -> list[NodeOverprovisioning]:
    rows: list[NodeOverprovisioning] = []
    for key, node in nodes.items():
        on_node = [
            g for g in running
            if g.node == key.node and g.connection_id == key.connection_id
        ]
        cpu_allocated = sum(g.cpu_allocated_cores for g in on_node)
        ram_allocated_gb = sum(g.ram_allocated_bytes for g in on_node) / GIB
        ram_physical_gb = node.mem_total_bytes / GIB

        rows.append(
            NodeOverprovisioning(
                name=key.node,
                connection_id=key.connection_id,
                cpu_ratio=round(cpu_allocated / node.core_count, 2) if node.core_count > 0 else 0.0,
                ram_ratio=round(ram_allocated_gb / ram_physical_gb, 2) if ram_physical_gb > 0 else 0.0,
                cpu_allocated=cpu_allocated,
                cpu_physical=node.core_count,
                ram_allocated=round(ram_allocated_gb, 1),
                ram_physical=round(ram_physical_gb, 1),
            )
        )
    return rows


def analyze_overprovisioning(
    nodes: Mapping[NodeKey, NodeSnapshot],
    guests: Sequence[GuestSnapshot],
    cpu_used_percent: float,
    ram_used_bytes: float,
) -> OverprovisioningReport:
    """Build the overprovisioning report.

    Args:
        nodes: online nodes of every connection, keyed by :class:`NodeKey`.
        guests: all guests; only running ones are considered.
        cpu_used_percent: current cluster-wide CPU utilization.
        ram_used_bytes: current memory in use across the online nodes.
    """
    running = [g for g in guests if g.is_running]

    cpu_physical = sum(n.core_count for n in nodes.values())
    cpu_allocated = sum(g.cpu_allocated_cores for g in running)
    cpu_used = cpu_used_percent / 100 * cpu_physical

    ram_physical_gb = sum(n.mem_total_bytes for n in nodes.values()) / GIB
    ram_allocated_gb = sum(g.ram_allocated_bytes for g in running) / GIB
    ram_used_gb = ram_used_bytes / GIB

    cpu_block = AllocationBlock(
        allocated=cpu_allocated,
        used=round(cpu_used, 1),
        physical=cpu_physical,
        ratio=round(cpu_allocated / cpu_physical, 2) if cpu_physical > 0 else 0.0,
        efficiency=round(cpu_used / cpu_allocated * 100, 1) if cpu_allocated > 0 else 0.0,
    )
    ram_block = AllocationBlock(
        allocated=round(ram_allocated_gb, 1),
        used=round(ram_used_gb, 1),
        physical=round(ram_physical_gb, 1),
        ratio=round(ram_allocated_gb / ram_physical_gb, 2) if ram_physical_gb > 0 else 0.0,
        efficiency=round(ram_used_gb / ram_allocated_gb * 100, 1) if ram_allocated_gb > 0 else 0.0,
    )

    return OverprovisioningReport(
        cpu=cpu_block,
        ram=ram_block,
        per_node=_per_node(nodes, running),
        top_overprovisioned=rank_rightsizing_candidates(running),
    )
