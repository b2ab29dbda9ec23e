"""Storage usage grouped by pool."""

from __future__ import annotations

from collections.abc import Iterable

from capacity_analytics.data.models import StoragePool, StorageSnapshot


def build_storage_pools(storages: Iterable[StorageSnapshot]) -> list[StoragePool]:
    """Aggregate available storages by storage name.

    A shared storage reported by several nodes becomes one pool listing
    every node that reported it.  Pools are sorted by fill level, fullest
    first.
    """
    pools: dict[str, StoragePool] = {}

    for storage in storages:
        if not storage.is_available or not storage.storage_name:
            continue
        pool = pools.get(storage.storage_name)
        if pool is None:
            pool = StoragePool(name=storage.storage_name, type=storage.plugin_type or "unknown")
            pools[storage.storage_name] = pool
        pool.used += storage.used_bytes
        pool.total += storage.total_bytes
        if storage.node and storage.node not in pool.nodes:
            pool.nodes.append(storage.node)

    for pool in pools.values():
        pool.pct = round(pool.used / pool.total * 100, 1) if pool.total > 0 else 0.0

    return sorted(pools.values(), key=lambda p: p.pct, reverse=True)
