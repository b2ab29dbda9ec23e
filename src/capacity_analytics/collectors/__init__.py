# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Metrics clients for reading cluster inventory and history."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from capacity_analytics.collectors.base import MetricsClient
    from capacity_analytics.config import ConnectionConfig

CLIENT_REGISTRY: dict[str, type[MetricsClient]] = {}


def register_client(name: str, cls: type[MetricsClient]) -> None:
    """Register a metrics client class by connection type."""
    CLIENT_REGISTRY[name] = cls


def get_client(name: str) -> type[MetricsClient]:
    """Look up a registered metrics client by connection type."""
    # Lazy-import known clients to populate the registry
    if name not in CLIENT_REGISTRY:
        _load_builtin_clients()

    if name not in CLIENT_REGISTRY:
        available = ", ".join(sorted(CLIENT_REGISTRY.keys()))
        raise KeyError(f"Unknown connection type '{name}'. Available: {available}")
    return CLIENT_REGISTRY[name]


def build_client(config: ConnectionConfig) -> MetricsClient:
    """Instantiate the client registered for ``config.type``."""
    return get_client(config.type)(config)


def _load_builtin_clients() -> None:
    """Import built-in clients so they self-register."""
    from capacity_analytics.collectors import file_import  # noqa: F401
    from capacity_analytics.collectors import proxmox  # noqa: F401
