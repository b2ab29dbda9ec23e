# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Collaborator protocols and inventory parsing.

A :class:`MetricsClient` is bound to one connection and returns inventory
in the shape of the Proxmox VE API (``/nodes``, ``/cluster/resources``);
the ``*_from_api`` helpers turn those dicts into snapshot models.  History
is returned as :class:`RawSample` lists and interpreted later by the
normalizer.
"""

from __future__ import annotations

import math
from typing import Any, Protocol, runtime_checkable

from capacity_analytics.data.models import (
    ClusterConnection,
    GuestSnapshot,
    HardwareProfile,
    NodeSnapshot,
    RawSample,
    ResourceThresholds,
    StorageSnapshot,
)


# ---------------------------------------------------------------------------
# Collaborator protocols
# ---------------------------------------------------------------------------

@runtime_checkable
class MetricsClient(Protocol):
    """Read-only access to one cluster's metrics."""

    async def list_nodes(self) -> list[NodeSnapshot]:
        ...

    async def list_guests(self) -> list[GuestSnapshot]:
        ...

    async def list_storages(self) -> list[StorageSnapshot]:
        ...

    async def get_node_history(self, node: str, timeframe: str) -> list[RawSample]:
        ...

    async def get_storage_history(
        self, node: str, storage: str, timeframe: str
    ) -> list[RawSample]:
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...


class ConnectionRegistry(Protocol):
    def list(self) -> list[ClusterConnection]:
        ...


class SettingsStore(Protocol):
    def get_hardware_profile(self) -> HardwareProfile | None:
        ...

    def get_resource_thresholds(self) -> ResourceThresholds:
        ...


# ---------------------------------------------------------------------------
# API payload parsing
# ---------------------------------------------------------------------------

def _num(value: Any) -> float:
    """Non-negative finite float, 0.0 for anything else."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def node_from_api(item: dict[str, Any]) -> NodeSnapshot:
    """Parse one entry of ``GET /nodes``."""
    return NodeSnapshot(
        node=str(item.get("node", "")),
        status=str(item.get("status", "unknown")),
        cpu_ratio=_num(item.get("cpu")),
        core_count=_num(item.get("maxcpu")),
        mem_used_bytes=_num(item.get("mem")),
        mem_total_bytes=_num(item.get("maxmem")),
    )


def guest_from_api(
    item: dict[str, Any], connection_id: str, connection_name: str = ""
) -> GuestSnapshot:
    """Parse one ``type=vm`` entry of ``GET /cluster/resources``.

    CPU and RAM percentages are whole numbers and are only reported for
    running guests.
    """
    status = str(item.get("status", "unknown"))
    guest_type = str(item.get("type", "qemu"))
    node = str(item.get("node", ""))
    vmid = str(item.get("vmid", ""))
    running = status == "running"

    max_mem = _num(item.get("maxmem"))
    cpu_percent = round(_num(item.get("cpu")) * 100) if running else 0
    ram_percent = round(_num(item.get("mem")) / max_mem * 100) if running and max_mem else 0

    return GuestSnapshot(
        id=f"{connection_id}:{guest_type}:{node}:{vmid}",
        vmid=vmid,
        name=str(item.get("name") or f"{guest_type}/{vmid}"),
        node=node,
        type=guest_type,
        connection_id=connection_id,
        connection_name=connection_name,
        status=status,
        cpu_percent=cpu_percent,
        ram_percent=ram_percent,
        cpu_allocated_cores=_num(item.get("maxcpu")),
        ram_allocated_bytes=max_mem,
        netin=_num(item.get("netin")),
        netout=_num(item.get("netout")),
    )


def storage_from_api(item: dict[str, Any]) -> StorageSnapshot:
    """Parse one ``type=storage`` entry of ``GET /cluster/resources``."""
    return StorageSnapshot(
        node=str(item.get("node", "")),
        storage_name=str(item.get("storage", "")),
        plugin_type=str(item.get("plugintype") or item.get("type") or "unknown"),
        used_bytes=_num(item.get("disk")),
        total_bytes=_num(item.get("maxdisk")),
        status=str(item.get("status", "unknown")),
    )


def samples_from_api(items: Any) -> list[RawSample]:
    """Parse an ``rrddata`` response, skipping anything that is not a dict."""
    if not isinstance(items, list):
        return []
    return [RawSample.model_validate(item) for item in items if isinstance(item, dict)]
