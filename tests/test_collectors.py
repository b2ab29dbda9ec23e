# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Tests for the metrics client registry, API parsing and the clients."""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import pytest

from capacity_analytics.collectors import (
    CLIENT_REGISTRY,
    build_client,
    get_client,
    register_client,
)
from capacity_analytics.collectors.base import (
    MetricsClient,
    guest_from_api,
    node_from_api,
    samples_from_api,
    storage_from_api,
)
from capacity_analytics.collectors.file_import import JsonSnapshotClient
from capacity_analytics.collectors.proxmox import ProxmoxClient
from capacity_analytics.config import ConnectionConfig, CredentialRef
from capacity_analytics.exceptions import MetricsClientError

from conftest import GIB

FIXTURES = Path(__file__).parent / "fixtures"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class TestRegistry:
    def test_builtin_clients(self):
        assert get_client("pve") is ProxmoxClient
        assert get_client("json") is JsonSnapshotClient

    def test_unknown_type(self):
        with pytest.raises(KeyError, match="Unknown connection type"):
            get_client("vmware")

    def test_register_custom(self):
        class DummyClient:
            def __init__(self, config):
                self.config = config

        register_client("dummy_test", DummyClient)
        try:
            assert get_client("dummy_test") is DummyClient
            # Built-ins still load after a custom registration.
            assert get_client("json") is JsonSnapshotClient
        finally:
            CLIENT_REGISTRY.pop("dummy_test", None)

    def test_build_client(self):
        client = build_client(ConnectionConfig(id="s", type="json", endpoint="x.json"))
        assert isinstance(client, JsonSnapshotClient)
        assert isinstance(client, MetricsClient)


# ---------------------------------------------------------------------------
# API payload parsing
# ---------------------------------------------------------------------------

class TestParsing:
    def test_node(self):
        node = node_from_api(
            {"node": "pve1", "status": "online", "cpu": 0.3, "maxcpu": 32,
             "mem": 10 * GIB, "maxmem": 128 * GIB}
        )
        assert node.is_online
        assert node.capacity.max_cpu_cores == 32
        assert node.capacity.max_mem_bytes == 128 * GIB

    def test_node_bad_numbers(self):
        node = node_from_api({"node": "pve1", "cpu": "high", "maxcpu": -4, "mem": None})
        assert node.cpu_ratio == 0.0
        assert node.core_count == 0.0
        assert node.status == "unknown"

    def test_running_guest(self):
        guest = guest_from_api(
            {"vmid": 100, "type": "qemu", "node": "pve1", "status": "running",
             "cpu": 0.123, "maxcpu": 4, "mem": GIB, "maxmem": 4 * GIB},
            "lab",
            "Lab",
        )
        assert guest.id == "lab:qemu:pve1:100"
        assert guest.vmid == "100"
        assert guest.name == "qemu/100"
        assert guest.cpu_percent == 12
        assert guest.ram_percent == 25
        assert guest.connection_name == "Lab"

    def test_stopped_guest_has_no_usage(self):
        guest = guest_from_api(
            {"vmid": 200, "type": "lxc", "node": "pve2", "status": "stopped",
             "name": "ct", "cpu": 0.5, "mem": GIB, "maxmem": 2 * GIB},
            "lab",
        )
        assert guest.cpu_percent == 0
        assert guest.ram_percent == 0
        assert not guest.is_running

    def test_guest_payload_keys(self):
        guest = guest_from_api({"vmid": 1, "node": "n", "status": "running"}, "c")
        payload = guest.model_dump(by_alias=True)
        assert {"cpu", "ram", "cpuAllocated", "ramAllocated", "connName"} <= set(payload)

    def test_storage(self):
        storage = storage_from_api(
            {"storage": "local", "node": "pve1", "type": "storage", "plugintype": "zfspool",
             "status": "available", "disk": 25, "maxdisk": 100}
        )
        assert storage.plugin_type == "zfspool"
        assert storage.used_percent == 25.0

    def test_storage_without_capacity(self):
        assert storage_from_api({"storage": "x"}).used_percent is None

    def test_samples(self):
        samples = samples_from_api([{"time": 1, "cpu": 0.1}, "junk", None])
        assert len(samples) == 1
        assert samples_from_api(None) == []


# ---------------------------------------------------------------------------
# Proxmox client
# ---------------------------------------------------------------------------

def _pve_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/api2/json/nodes":
        return httpx.Response(200, json={"data": [
            {"node": "pve1", "status": "online", "cpu": 0.1, "maxcpu": 8,
             "mem": GIB, "maxmem": 8 * GIB},
        ]})
    if path == "/api2/json/cluster/resources":
        if request.url.params.get("type") == "vm":
            return httpx.Response(200, json={"data": [
                {"vmid": 100, "type": "qemu", "node": "pve1", "status": "running",
                 "cpu": 0.5, "maxcpu": 2, "mem": GIB, "maxmem": 2 * GIB},
            ]})
        return httpx.Response(200, json={"data": [
            {"storage": "local", "node": "pve1", "plugintype": "dir",
             "status": "available", "disk": 1, "maxdisk": 4},
        ]})
    if path == "/api2/json/nodes/pve1/rrddata":
        assert request.url.params["timeframe"] == "year"
        assert request.url.params["cf"] == "AVERAGE"
        return httpx.Response(200, json={"data": [{"time": 1700000000, "cpu": 0.2}]})
    if path == "/api2/json/nodes/pve1/storage/local/rrddata":
        return httpx.Response(200, json={"data": [{"time": 1700000000, "used": 1, "total": 4}]})
    if path == "/api2/json/nodes/broken/rrddata":
        return httpx.Response(500, json={"errors": "boom"})
    if path == "/api2/json/nodes/garbled/rrddata":
        return httpx.Response(200, content=b"<html>")
    return httpx.Response(404)


@pytest.fixture()
def pve_config():
    return ConnectionConfig(
        id="lab",
        name="Lab",
        endpoint="pve.lab:8006",
        credentials=CredentialRef(value="root@pam!monitor=abc"),
    )


def _run(client: ProxmoxClient, coro_factory):
    async def _go():
        try:
            return await coro_factory(client)
        finally:
            await client.aclose()

    return asyncio.run(_go())


class TestProxmoxClient:
    def test_url_normalisation(self):
        assert ProxmoxClient._normalise_url("pve:8006") == "https://pve:8006/api2/json"
        assert ProxmoxClient._normalise_url("http://pve/api2/json/") == "http://pve/api2/json"

    def test_auth_header(self, pve_config):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            seen["accept"] = request.headers.get("Accept")
            return httpx.Response(200, json={"data": []})

        client = ProxmoxClient(pve_config, transport=httpx.MockTransport(handler))
        assert _run(client, lambda c: c.list_nodes()) == []
        assert seen["auth"] == "PVEAPIToken=root@pam!monitor=abc"
        assert seen["accept"] == "application/json"

    def test_inventory(self, pve_config):
        client = ProxmoxClient(pve_config, transport=httpx.MockTransport(_pve_handler))

        async def inventory(c):
            return await c.list_nodes(), await c.list_guests(), await c.list_storages()

        nodes, guests, storages = _run(client, inventory)
        assert nodes[0].node == "pve1"
        assert nodes[0].core_count == 8
        assert guests[0].id == "lab:qemu:pve1:100"
        assert guests[0].cpu_percent == 50
        assert guests[0].connection_name == "Lab"
        assert storages[0].used_percent == 25.0

    def test_history(self, pve_config):
        client = ProxmoxClient(pve_config, transport=httpx.MockTransport(_pve_handler))

        async def history(c):
            return (
                await c.get_node_history("pve1", "year"),
                await c.get_storage_history("pve1", "local", "year"),
            )

        node_samples, storage_samples = _run(client, history)
        assert node_samples[0].cpu == 0.2
        assert storage_samples[0].used == 1

    def test_http_error_wrapped(self, pve_config):
        client = ProxmoxClient(pve_config, transport=httpx.MockTransport(_pve_handler))
        with pytest.raises(MetricsClientError) as info:
            _run(client, lambda c: c.get_node_history("broken", "year"))
        assert info.value.status_code == 500

    def test_invalid_json_wrapped(self, pve_config):
        client = ProxmoxClient(pve_config, transport=httpx.MockTransport(_pve_handler))
        with pytest.raises(MetricsClientError, match="invalid JSON"):
            _run(client, lambda c: c.get_node_history("garbled", "year"))

    def test_transport_error_wrapped(self, pve_config):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = ProxmoxClient(pve_config, transport=httpx.MockTransport(handler))
        with pytest.raises(MetricsClientError, match="failed"):
            _run(client, lambda c: c.list_nodes())


# ---------------------------------------------------------------------------
# JSON snapshot client
# ---------------------------------------------------------------------------

class TestJsonSnapshotClient:
    def _client(self, path) -> JsonSnapshotClient:
        return JsonSnapshotClient(
            ConnectionConfig(id="snap", type="json", endpoint=str(path))
        )

    def test_reads_snapshot(self):
        client = self._client(FIXTURES / "snapshot.json")

        async def read():
            return (
                await client.list_nodes(),
                await client.list_guests(),
                await client.list_storages(),
                await client.get_node_history("pve1", "year"),
                await client.get_storage_history("pve1", "local-lvm", "year"),
                await client.get_node_history("pve9", "year"),
            )

        nodes, guests, storages, node_hist, storage_hist, missing = asyncio.run(read())
        assert [n.node for n in nodes] == ["pve1", "pve2", "pve3"]
        assert guests[0].id == "snap:qemu:pve1:100"
        assert len(storages) == 2
        assert len(node_hist) == 3
        assert len(storage_hist) == 2
        assert missing == []

    def test_missing_file(self, tmp_path):
        client = self._client(tmp_path / "nope.json")
        with pytest.raises(MetricsClientError, match="not found"):
            asyncio.run(client.list_nodes())

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2]")
        with pytest.raises(MetricsClientError, match="JSON object"):
            asyncio.run(self._client(path).list_nodes())
