# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Historical telemetry pipeline: normalize, group, weight, densify."""

from capacity_analytics.telemetry.normalizer import normalize_sample
from capacity_analytics.telemetry.daily import aggregate_node_days, aggregate_storage_days
from capacity_analytics.telemetry.weighted import compute_global_averages
from capacity_analytics.telemetry.trend import calculate_trend
from capacity_analytics.telemetry.densifier import (
    FlatFallbackStrategy,
    RrdWeightedStrategy,
    densify_series,
    resolve_series,
)

__all__ = [
    "FlatFallbackStrategy",
    "RrdWeightedStrategy",
    "aggregate_node_days",
    "aggregate_storage_days",
    "calculate_trend",
    "compute_global_averages",
    "densify_series",
    "normalize_sample",
    "resolve_series",
]
