# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Data models shared across the engine."""

from capacity_analytics.data.models import (
    ClusterConnection,
    DailyGlobalAverage,
    GreenMetrics,
    GuestSnapshot,
    NodeCapacity,
    NodeKey,
    NodeSnapshot,
    OverprovisioningReport,
    OverviewResponse,
    RawSample,
    ResourceThresholds,
    StageDiagnostics,
    StorageSnapshot,
    TrendPoint,
    TrendSeries,
)

__all__ = [
    "ClusterConnection",
    "DailyGlobalAverage",
    "GreenMetrics",
    "GuestSnapshot",
    "NodeCapacity",
    "NodeKey",
    "NodeSnapshot",
    "OverprovisioningReport",
    "OverviewResponse",
    "RawSample",
    "ResourceThresholds",
    "StageDiagnostics",
    "StorageSnapshot",
    "TrendPoint",
    "TrendSeries",
]
