# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Capacity Analytics - resource telemetry aggregation for virtualization clusters."""

__version__ = "0.1.0"

from capacity_analytics.data.models import (
    ClusterConnection,
    GreenMetrics,
    HardwareProfile,
    OverprovisioningReport,
    OverviewResponse,
    ResourceThresholds,
    TrendPoint,
)
from capacity_analytics.config import AppConfig, load_config
from capacity_analytics.engine import OverviewEngine
from capacity_analytics.exceptions import (
    CapacityAnalyticsError,
    ConnectionUnreachable,
    HistoryUnavailable,
    NoConnectionsConfigured,
)

__all__ = [
    "AppConfig",
    "CapacityAnalyticsError",
    "ClusterConnection",
    "ConnectionUnreachable",
    "GreenMetrics",
    "HardwareProfile",
    "HistoryUnavailable",
    "NoConnectionsConfigured",
    "OverprovisioningReport",
    "OverviewEngine",
    "OverviewResponse",
    "ResourceThresholds",
    "TrendPoint",
    "load_config",
]
