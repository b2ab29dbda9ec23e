# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Analyzers over the current inventory snapshot."""

from capacity_analytics.analysis.overprovisioning import (
    allocation_efficiency,
    analyze_overprovisioning,
)
from capacity_analytics.analysis.green import calculate_green_metrics
from capacity_analytics.analysis.storage_pools import build_storage_pools
from capacity_analytics.analysis.network import build_network_metrics
from capacity_analytics.analysis.health import evaluate_health

__all__ = [
    "allocation_efficiency",
    "analyze_overprovisioning",
    "build_network_metrics",
    "build_storage_pools",
    "calculate_green_metrics",
    "evaluate_health",
]
