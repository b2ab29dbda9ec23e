# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""JSON snapshot metrics client.

Serves a cluster captured to a JSON file, for offline analysis and
demos.  The file holds API-shaped lists plus history keyed by node
(``"pve1"``) or by node and storage (``"pve1/local"``)::

    {
      "nodes": [{"node": "pve1", "status": "online", "cpu": 0.2, ...}],
      "guests": [{"vmid": 100, "type": "qemu", "node": "pve1", ...}],
      "storages": [{"storage": "local", "node": "pve1", "disk": 1, ...}],
      "node_history": {"pve1": [{"time": 1700000000, "cpu": 0.2, ...}]},
      "storage_history": {"pve1/local": [{"time": 1700000000, "used": 1}]}
    }

Uses only stdlib, no extra dependencies required.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from capacity_analytics.collectors import register_client
from capacity_analytics.collectors.base import (
    guest_from_api,
    node_from_api,
    samples_from_api,
    storage_from_api,
)
from capacity_analytics.config import ConnectionConfig
from capacity_analytics.data.models import (
    GuestSnapshot,
    NodeSnapshot,
    RawSample,
    StorageSnapshot,
)
from capacity_analytics.exceptions import MetricsClientError

logger = logging.getLogger(__name__)


class JsonSnapshotClient:
    """Metrics client reading one JSON snapshot file.

    The history timeframe is ignored: the file holds whatever window was
    captured.
    """

    def __init__(self, config: ConnectionConfig) -> None:
        self.config = config
        self.path = Path(config.endpoint).expanduser()
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data
        if not self.path.exists():
            raise MetricsClientError(f"Snapshot file not found: {self.path}")
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            raise MetricsClientError(f"Error reading {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise MetricsClientError(f"Snapshot {self.path} must contain a JSON object")
        logger.debug("Loaded snapshot %s for connection %s", self.path, self.config.id)
        self._data = data
        return data

    def _items(self, key: str) -> list[dict[str, Any]]:
        items = self._load().get(key) or []
        return [item for item in items if isinstance(item, dict)]

    async def list_nodes(self) -> list[NodeSnapshot]:
        return [node_from_api(item) for item in self._items("nodes")]

    async def list_guests(self) -> list[GuestSnapshot]:
        return [
            guest_from_api(item, self.config.id, self.config.display_name)
            for item in self._items("guests")
        ]

    async def list_storages(self) -> list[StorageSnapshot]:
        return [storage_from_api(item) for item in self._items("storages")]

    async def get_node_history(self, node: str, timeframe: str) -> list[RawSample]:
        history = self._load().get("node_history") or {}
        return samples_from_api(history.get(node))

    async def get_storage_history(
        self, node: str, storage: str, timeframe: str
    ) -> list[RawSample]:
        history = self._load().get("storage_history") or {}
        return samples_from_api(history.get(f"{node}/{storage}"))

    async def aclose(self) -> None:
        self._data = None


# Self-register
register_client("json", JsonSnapshotClient)
