# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Proxmox VE REST API metrics client.

Reads nodes, guests and storages from ``/api2/json`` and the RRD history
of nodes and storages.  Authentication uses an API token passed in the
``Authorization`` header as ``PVEAPIToken=user@realm!tokenid=secret``.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

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

API_PREFIX = "/api2/json"
TOKEN_PREFIX = "PVEAPIToken="


class ProxmoxClient:
    """Async client for one Proxmox VE cluster.

    Options (``config.options``):

    - ``cf``: RRD consolidation function, ``AVERAGE`` (default) or ``MAX``.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.options = config.options
        self.consolidation = str(self.options.get("cf", "AVERAGE"))
        self._client = self._get_client(transport)

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    @staticmethod
    def _normalise_url(endpoint: str) -> str:
        url = endpoint.rstrip("/")
        if not url.startswith(("http://", "https://")):
            url = f"https://{url}"
        if not url.endswith(API_PREFIX):
            url = f"{url}{API_PREFIX}"
        return url

    def _auth_header(self) -> dict[str, str]:
        if not self.config.credentials:
            return {}
        token = self.config.credentials.resolve()
        if not token.startswith(TOKEN_PREFIX):
            token = f"{TOKEN_PREFIX}{token}"
        return {"Authorization": token}

    def _get_client(self, transport: httpx.AsyncBaseTransport | None) -> httpx.AsyncClient:
        """Create an httpx client with authentication and TLS settings."""
        return httpx.AsyncClient(
            base_url=self._normalise_url(self.config.endpoint),
            headers={"Accept": "application/json", **self._auth_header()},
            verify=self.config.verify_ssl,
            timeout=float(self.config.timeout_seconds),
            transport=transport,
        )

    async def _get(self, path: str, params: dict[str, str] | None = None) -> Any:
        """GET *path* and unwrap the ``{"data": ...}`` envelope."""
        logger.debug("%s: GET %s %s", self.config.id, path, params or "")
        try:
            resp = await self._client.get(path, params=params)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise MetricsClientError(
                f"{self.config.id}: GET {path} returned {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise MetricsClientError(f"{self.config.id}: GET {path} failed: {exc}") from exc

        try:
            payload = resp.json()
        except ValueError as exc:
            raise MetricsClientError(f"{self.config.id}: GET {path} returned invalid JSON") from exc

        if isinstance(payload, dict):
            return payload.get("data")
        return payload

    async def _get_list(self, path: str, params: dict[str, str] | None = None) -> list[dict[str, Any]]:
        data = await self._get(path, params)
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]

    # ------------------------------------------------------------------
    # MetricsClient
    # ------------------------------------------------------------------

    async def list_nodes(self) -> list[NodeSnapshot]:
        return [node_from_api(item) for item in await self._get_list("/nodes")]

    async def list_guests(self) -> list[GuestSnapshot]:
        items = await self._get_list("/cluster/resources", {"type": "vm"})
        return [
            guest_from_api(item, self.config.id, self.config.display_name)
            for item in items
        ]

    async def list_storages(self) -> list[StorageSnapshot]:
        items = await self._get_list("/cluster/resources", {"type": "storage"})
        return [storage_from_api(item) for item in items]

    async def get_node_history(self, node: str, timeframe: str) -> list[RawSample]:
        path = f"/nodes/{quote(node, safe='')}/rrddata"
        data = await self._get(path, {"timeframe": timeframe, "cf": self.consolidation})
        return samples_from_api(data)

    async def get_storage_history(
        self, node: str, storage: str, timeframe: str
    ) -> list[RawSample]:
        path = f"/nodes/{quote(node, safe='')}/storage/{quote(storage, safe='')}/rrddata"
        data = await self._get(path, {"timeframe": timeframe, "cf": self.consolidation})
        return samples_from_api(data)

    async def aclose(self) -> None:
        await self._client.aclose()


# Self-register
register_client("pve", ProxmoxClient)
