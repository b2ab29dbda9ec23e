# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Shared test fixtures for the capacity analytics test suite."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, time, timezone
from typing import Any

import pytest

from capacity_analytics.collectors.base import (
    guest_from_api,
    node_from_api,
    samples_from_api,
    storage_from_api,
)
from capacity_analytics.config import EngineSettings
from capacity_analytics.data.models import (
    ClusterConnection,
    HardwareProfile,
    ResourceThresholds,
)
from capacity_analytics.engine import OverviewEngine
from capacity_analytics.exceptions import MetricsClientError

GIB = 1024 ** 3
TODAY = date(2025, 6, 30)


def epoch(day: date, hour: int = 12) -> int:
    """Epoch seconds of *day* at *hour* UTC."""
    return int(datetime.combine(day, time(hour), tzinfo=timezone.utc).timestamp())


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------

class FakeClient:
    """In-memory metrics client serving an API-shaped payload.

    ``fail`` names operations that raise, ``hang`` operations that never
    finish: ``nodes``, ``guests``, ``storages``, ``history:<node>`` and
    ``history:<node>/<storage>``.  History calls sleep for ``delay`` seconds
    and the peak number in flight at once is kept in ``peak_in_flight``.
    """

    def __init__(
        self,
        connection: ClusterConnection,
        payload: dict[str, Any],
        fail: set[str] | None = None,
        hang: set[str] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.connection = connection
        self.payload = payload
        self.fail = fail or set()
        self.hang = hang or set()
        self.delay = delay
        self.in_flight = 0
        self.peak_in_flight = 0
        self.closed = False
        self.calls: list[str] = []

    async def _enter(self, op: str) -> None:
        self.calls.append(op)
        history = op.startswith("history:")
        if history:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if op in self.hang:
                await asyncio.sleep(3600)
            if history and self.delay:
                await asyncio.sleep(self.delay)
            if op in self.fail:
                raise MetricsClientError(f"{op} failed")
        finally:
            if history:
                self.in_flight -= 1

    async def list_nodes(self):
        await self._enter("nodes")
        return [node_from_api(i) for i in self.payload.get("nodes", [])]

    async def list_guests(self):
        await self._enter("guests")
        return [
            guest_from_api(i, self.connection.id, self.connection.name)
            for i in self.payload.get("guests", [])
        ]

    async def list_storages(self):
        await self._enter("storages")
        return [storage_from_api(i) for i in self.payload.get("storages", [])]

    async def get_node_history(self, node, timeframe):
        await self._enter(f"history:{node}")
        return samples_from_api(self.payload.get("node_history", {}).get(node))

    async def get_storage_history(self, node, storage, timeframe):
        await self._enter(f"history:{node}/{storage}")
        return samples_from_api(
            self.payload.get("storage_history", {}).get(f"{node}/{storage}")
        )

    async def aclose(self):
        self.closed = True


class FakeRegistry:
    def __init__(self, connections: list[ClusterConnection]) -> None:
        self.connections = connections

    def list(self) -> list[ClusterConnection]:
        return list(self.connections)


class FakeSettingsStore:
    def __init__(
        self,
        profile: HardwareProfile | None = None,
        thresholds: ResourceThresholds | None = None,
    ) -> None:
        self.profile = profile
        self.thresholds = thresholds or ResourceThresholds()

    def get_hardware_profile(self) -> HardwareProfile | None:
        return self.profile

    def get_resource_thresholds(self) -> ResourceThresholds:
        return self.thresholds


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def build_payload(days: int = 3, today: date = TODAY) -> dict[str, Any]:
    """Two 8-core / 32 GiB nodes, one running and one stopped guest, one storage.

    Current usage: pve1 at 25% CPU / 16 GiB, pve2 at 50% CPU / 8 GiB.
    History: one point per node per day ending *today*, pve1 at 20% CPU,
    pve2 at 40%, both at 50% RAM.  The storage history covers the days
    before today at 5% while the live reading is 10%.
    """
    history_days = [date.fromordinal(today.toordinal() - i) for i in range(days - 1, -1, -1)]
    return {
        "nodes": [
            {"node": "pve1", "status": "online", "cpu": 0.25, "maxcpu": 8,
             "mem": 16 * GIB, "maxmem": 32 * GIB},
            {"node": "pve2", "status": "online", "cpu": 0.5, "maxcpu": 8,
             "mem": 8 * GIB, "maxmem": 32 * GIB},
        ],
        "guests": [
            {"vmid": 100, "name": "db01", "type": "qemu", "node": "pve1",
             "status": "running", "cpu": 0.1, "maxcpu": 8,
             "mem": 4 * GIB, "maxmem": 16 * GIB},
            {"vmid": 101, "name": "old-web", "type": "qemu", "node": "pve2",
             "status": "stopped", "maxcpu": 4, "maxmem": 8 * GIB},
        ],
        "storages": [
            {"storage": "local", "node": "pve1", "plugintype": "dir",
             "status": "available", "disk": 100 * GIB, "maxdisk": 1000 * GIB},
        ],
        "node_history": {
            "pve1": [
                {"time": epoch(d), "cpu": 0.2, "memused": 16 * GIB, "memtotal": 32 * GIB}
                for d in history_days
            ],
            "pve2": [
                {"time": epoch(d), "cpu": 0.4, "memused": 16 * GIB, "memtotal": 32 * GIB}
                for d in history_days
            ],
        },
        "storage_history": {
            "pve1/local": [
                {"time": epoch(d), "used": 50 * GIB, "total": 1000 * GIB}
                for d in history_days[:-1]
            ],
        },
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def payload() -> dict[str, Any]:
    return build_payload()


@pytest.fixture()
def make_engine():
    """Factory: ``make_engine({conn_id: payload}, fail={conn_id: {...}})``.

    Returns ``(engine, clients)`` where *clients* maps each connection id to
    the last :class:`FakeClient` created for it.
    """

    def _make(
        payloads: dict[str, dict[str, Any]],
        fail: dict[str, set[str]] | None = None,
        hang: dict[str, set[str]] | None = None,
        settings: EngineSettings | None = None,
        store: FakeSettingsStore | None = None,
        delay: float = 0.0,
    ):
        fail = fail or {}
        hang = hang or {}
        clients: dict[str, FakeClient] = {}
        connections = [
            ClusterConnection(id=conn_id, name=f"Cluster {conn_id}")
            for conn_id in payloads
        ]

        def factory(connection: ClusterConnection) -> FakeClient:
            client = FakeClient(
                connection,
                payloads[connection.id],
                fail=fail.get(connection.id),
                hang=hang.get(connection.id),
                delay=delay,
            )
            clients[connection.id] = client
            return client

        engine = OverviewEngine(
            FakeRegistry(connections),
            factory,
            store or FakeSettingsStore(),
            settings=settings,
            today=lambda: TODAY,
        )
        return engine, clients

    return _make
