# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Core Pydantic v2 data models for the capacity analytics engine.

This module defines the data contract shared by the collectors, the
telemetry pipeline, the analyzers, the orchestrator and the API / CLI
layers.  Python attributes are snake_case; JSON payloads use the camelCase
keys expected by the dashboard, produced through field aliases.
"""

from __future__ import annotations

from datetime import date
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

GIB = 1024 ** 3

_CAMEL = {"populate_by_name": True, "alias_generator": to_camel}


# ---------------------------------------------------------------------------
# Inventory snapshots
# ---------------------------------------------------------------------------

class ClusterConnection(BaseModel):
    """One independently managed virtualization cluster."""

    model_config = _CAMEL

    id: str = Field(..., description="Unique connection identifier")
    name: str = Field(..., description="Human-readable connection name")
    type: str = Field(default="pve", description="Metrics client type")


class NodeKey(BaseModel):
    """Identifies a node across all connections."""

    model_config = {"frozen": True}

    connection_id: str
    node: str

    def __str__(self) -> str:
        return f"{self.connection_id}:{self.node}"


class NodeCapacity(BaseModel):
    """Physical capacity of a node, used as the averaging weight."""

    model_config = {"frozen": True}

    max_cpu_cores: float = Field(default=0.0, ge=0, description="Physical cores")
    max_mem_bytes: float = Field(default=0.0, ge=0, description="Installed memory in bytes")


class NodeSnapshot(BaseModel):
    """Current instantaneous state of one physical host."""

    model_config = _CAMEL

    node: str = Field(..., description="Node name within its connection")
    status: str = Field(default="unknown", description="online, offline, unknown")
    cpu_ratio: float = Field(default=0.0, ge=0, description="CPU usage ratio (0.0-1.0)")
    core_count: float = Field(default=0.0, ge=0, description="Physical CPU cores")
    mem_used_bytes: float = Field(default=0.0, ge=0)
    mem_total_bytes: float = Field(default=0.0, ge=0)

    @property
    def is_online(self) -> bool:
        return self.status == "online"

    @property
    def capacity(self) -> NodeCapacity:
        return NodeCapacity(
            max_cpu_cores=self.core_count, max_mem_bytes=self.mem_total_bytes
        )


class GuestSnapshot(BaseModel):
    """Current instantaneous state of one VM or container."""

    model_config = _CAMEL

    id: str = Field(..., description="Composite id: connection:type:node:vmid")
    vmid: str = Field(default="", description="Numeric guest id as reported by the cluster")
    name: str = Field(default="")
    node: str = Field(default="")
    type: str = Field(default="qemu", description="qemu or lxc")
    connection_id: str = Field(default="")
    connection_name: str = Field(default="", alias="connName")
    status: str = Field(default="unknown")
    cpu_percent: float = Field(default=0.0, ge=0, alias="cpu")
    ram_percent: float = Field(default=0.0, ge=0, alias="ram")
    cpu_allocated_cores: float = Field(default=0.0, ge=0, alias="cpuAllocated")
    ram_allocated_bytes: float = Field(default=0.0, ge=0, alias="ramAllocated")
    netin: float = Field(default=0.0, ge=0)
    netout: float = Field(default=0.0, ge=0)

    @property
    def is_running(self) -> bool:
        return self.status == "running"


class StorageSnapshot(BaseModel):
    """Current instantaneous state of one storage volume."""

    model_config = _CAMEL

    node: str = Field(default="")
    storage_name: str = Field(default="")
    plugin_type: str = Field(default="unknown")
    used_bytes: float = Field(default=0.0, ge=0)
    total_bytes: float = Field(default=0.0, ge=0)
    status: str = Field(default="unknown")

    @property
    def is_available(self) -> bool:
        return self.status == "available"

    @property
    def used_percent(self) -> float | None:
        if self.total_bytes <= 0:
            return None
        return self.used_bytes / self.total_bytes * 100


# ---------------------------------------------------------------------------
# Historical samples
# ---------------------------------------------------------------------------

class RawSample(BaseModel):
    """One historical data point as returned by the metrics store.

    Every field is loosely typed: remote endpoints return numbers, strings,
    nulls or nothing at all, and the normalizer decides what is usable.
    """

    model_config = {"extra": "allow"}

    time: Any = None
    cpu: Any = None
    maxcpu: Any = None
    mem: Any = None
    maxmem: Any = None
    memused: Any = None
    memtotal: Any = None
    used: Any = None
    total: Any = None
    netin: Any = None
    netout: Any = None


class NodeSample(BaseModel):
    """A node history point together with the node's capacity."""

    source: Literal["node"] = "node"
    raw: RawSample
    capacity: NodeCapacity = Field(default_factory=NodeCapacity)


class StorageSample(BaseModel):
    """A storage history point together with the storage's live capacity."""

    source: Literal["storage"] = "storage"
    raw: RawSample
    live_total_bytes: float = Field(
        default=0.0, description="Current capacity, used when the point has no total"
    )


HistorySample = Annotated[Union[NodeSample, StorageSample], Field(discriminator="source")]


class NormalizedSample(BaseModel):
    """Canonical form of one historical point.

    A metric that is ``None`` had no valid reading in the source point.
    """

    day_key: date
    cpu_percent: float | None = Field(default=None, ge=0, le=100)
    ram_percent: float | None = Field(default=None, ge=0, le=100)
    storage_percent: float | None = Field(default=None, ge=0, le=100)

    @property
    def is_empty(self) -> bool:
        return (
            self.cpu_percent is None
            and self.ram_percent is None
            and self.storage_percent is None
        )


class DayReadings(BaseModel):
    """All valid readings of one node for one calendar day."""

    cpu: list[float] = Field(default_factory=list)
    ram: list[float] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.cpu and not self.ram


class StageDiagnostics(BaseModel):
    """Accepted / rejected tallies for one pipeline stage."""

    model_config = _CAMEL

    stage: str
    accepted: int = 0
    rejected_reasons: dict[str, int] = Field(default_factory=dict)

    def accept(self, count: int = 1) -> None:
        self.accepted += count

    def reject(self, reason: str, count: int = 1) -> None:
        self.rejected_reasons[reason] = self.rejected_reasons.get(reason, 0) + count

    def merge(self, other: StageDiagnostics) -> None:
        self.accepted += other.accepted
        for reason, count in other.rejected_reasons.items():
            self.reject(reason, count)

    @property
    def rejected(self) -> int:
        return sum(self.rejected_reasons.values())


# ---------------------------------------------------------------------------
# Aggregates and series
# ---------------------------------------------------------------------------

class DailyGlobalAverage(BaseModel):
    """Capacity-weighted cluster-wide utilization for one day."""

    day: date
    cpu_percent: float = Field(..., ge=0, le=100)
    ram_percent: float = Field(..., ge=0, le=100)
    contributing_node_count: int = Field(..., ge=0)


class TrendPoint(BaseModel):
    """One displayed day of the utilization chart."""

    model_config = {"populate_by_name": True}

    label: str = Field(..., alias="t", description="Display label, e.g. '3 Jan'")
    day: date
    cpu_percent: float = Field(..., alias="cpu")
    ram_percent: float = Field(..., alias="ram")
    storage_percent: float | None = Field(default=None, alias="storage")


DataSource = Literal["rrd_weighted", "fallback", "empty"]


class TrendSeries(BaseModel):
    """A dense chart series plus its resolved period."""

    points: list[TrendPoint] = Field(default_factory=list)
    period_start: date | None = None
    period_end: date | None = None
    data_source: DataSource = "rrd_weighted"

    @property
    def days_count(self) -> int:
        return len(self.points)


# ---------------------------------------------------------------------------
# Overprovisioning
# ---------------------------------------------------------------------------

class AllocationBlock(BaseModel):
    """Allocated vs used vs physical for one resource."""

    model_config = _CAMEL

    allocated: float = 0.0
    used: float = 0.0
    physical: float = 0.0
    ratio: float = Field(default=0.0, description="allocated / physical")
    efficiency: float = Field(default=0.0, description="used / allocated, in percent")


class NodeOverprovisioning(BaseModel):
    model_config = _CAMEL

    name: str
    connection_id: str = ""
    cpu_ratio: float = 0.0
    ram_ratio: float = 0.0
    cpu_allocated: float = 0.0
    cpu_physical: float = 0.0
    ram_allocated: float = Field(default=0.0, description="GiB allocated to running guests")
    ram_physical: float = Field(default=0.0, description="GiB installed")


class RightsizingSavings(BaseModel):
    model_config = {"populate_by_name": True}

    cpu: float = 0.0
    ram_gb: float = Field(default=0.0, alias="ramGB")


class RightsizingCandidate(BaseModel):
    """A running guest whose allocation exceeds its observed working set."""

    model_config = _CAMEL

    vmid: str
    name: str
    node: str
    cpu_allocated: float
    cpu_used_pct: float
    ram_allocated_gb: float = Field(..., alias="ramAllocatedGB")
    ram_used_pct: float
    recommended_cpu: int
    recommended_ram_gb: int = Field(..., alias="recommendedRamGB")
    potential_savings: RightsizingSavings


class OverprovisioningReport(BaseModel):
    model_config = _CAMEL

    cpu: AllocationBlock = Field(default_factory=AllocationBlock)
    ram: AllocationBlock = Field(default_factory=AllocationBlock)
    per_node: list[NodeOverprovisioning] = Field(default_factory=list)
    top_overprovisioned: list[RightsizingCandidate] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Green IT
# ---------------------------------------------------------------------------

class HardwareProfile(BaseModel):
    """Operator-tunable power, cost and carbon coefficients."""

    tdp_per_core: float = Field(default=10.0, ge=0, description="Watts per CPU core at 100%")
    watts_per_gb_ram: float = Field(default=0.375, ge=0)
    overhead_per_node: float = Field(
        default=50.0, ge=0, description="Disks, network and PSU losses per server (W)"
    )
    avg_cores_per_server: float = Field(
        default=64.0, ge=0, description="Used to estimate the physical server count"
    )
    pue: float = Field(default=1.4, ge=0, description="Power Usage Effectiveness")
    co2_factor: float = Field(default=0.052, ge=0, description="kg CO2 per kWh")
    electricity_price: float = Field(default=0.18, ge=0, description="Currency per kWh")
    km_car: float = Field(default=0.193, ge=0, description="kg CO2 per km driven")
    tree_per_year: float = Field(default=25.0, ge=0, description="kg CO2 absorbed per tree")
    smartphone_charge: float = Field(default=0.0085, ge=0, description="kg CO2 per charge")

    def with_defaults(self) -> HardwareProfile:
        """Copy where every zero coefficient is replaced by its default."""
        updates = {
            name: field.default
            for name, field in type(self).model_fields.items()
            if not getattr(self, name)
        }
        return self.model_copy(update=updates)


class PowerBlock(BaseModel):
    current: float = Field(default=0.0, description="Watts drawn now, PUE included")
    max: float = Field(default=0.0, description="Watts at 100% CPU, PUE included")
    monthly: float = Field(default=0.0, description="kWh per 30-day month")
    yearly: float = Field(default=0.0, description="kWh per year")


class Co2Block(BaseModel):
    model_config = _CAMEL

    hourly: float = 0.0
    daily: float = 0.0
    monthly: float = 0.0
    yearly: float = 0.0
    factor: float = Field(default=0.0, description="kg CO2 per kWh")
    equivalent_km_car: float = 0.0
    equivalent_trees: float = 0.0
    equivalent_smartphone_charges: float = 0.0


class CostBlock(BaseModel):
    model_config = _CAMEL

    hourly: float = 0.0
    daily: float = 0.0
    monthly: float = 0.0
    yearly: float = 0.0
    price_per_kwh: float = 0.0


class GreenEfficiencyBlock(BaseModel):
    model_config = _CAMEL

    pue: float = 0.0
    vm_per_kw: float = 0.0
    score: float = Field(default=0.0, ge=0, le=100)


class GreenMetrics(BaseModel):
    power: PowerBlock = Field(default_factory=PowerBlock)
    co2: Co2Block = Field(default_factory=Co2Block)
    cost: CostBlock = Field(default_factory=CostBlock)
    efficiency: GreenEfficiencyBlock = Field(default_factory=GreenEfficiencyBlock)


# ---------------------------------------------------------------------------
# Storage, network, health
# ---------------------------------------------------------------------------

class StoragePool(BaseModel):
    name: str
    type: str = "unknown"
    used: float = 0.0
    total: float = 0.0
    pct: float = 0.0
    nodes: list[str] = Field(default_factory=list)


class NetworkNode(BaseModel):
    name: str
    netin: float = 0.0
    netout: float = 0.0


class NetworkTrendPoint(BaseModel):
    model_config = {"populate_by_name": True}

    label: str = Field(..., alias="t")
    day: date
    netin: float = 0.0
    netout: float = 0.0


class NetworkVm(BaseModel):
    id: str
    name: str
    node: str
    netin: float = 0.0
    netout: float = 0.0


class NetworkMetrics(BaseModel):
    model_config = _CAMEL

    total_in: float = 0.0
    total_out: float = 0.0
    per_node: list[NetworkNode] = Field(default_factory=list)
    trends: list[NetworkTrendPoint] = Field(default_factory=list)
    top_vms: list[NetworkVm] = Field(default_factory=list)


class ThresholdLevel(BaseModel):
    warning: float = Field(default=80.0, ge=0, le=100)
    critical: float = Field(default=90.0, ge=0, le=100)


class ResourceThresholds(BaseModel):
    """Warning / critical utilization levels per resource."""

    cpu: ThresholdLevel = Field(default_factory=ThresholdLevel)
    ram: ThresholdLevel = Field(default_factory=ThresholdLevel)
    storage: ThresholdLevel = Field(default_factory=ThresholdLevel)


class HealthAlert(BaseModel):
    resource: Literal["cpu", "ram", "storage"]
    level: Literal["warning", "critical"]
    value: float


class HealthReport(BaseModel):
    model_config = _CAMEL

    score: float = Field(default=100.0, ge=0, le=100)
    cpu_percent: float = 0.0
    ram_percent: float = 0.0
    storage_percent: float = 0.0
    alerts: list[HealthAlert] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Overview response
# ---------------------------------------------------------------------------

class ResourceKpi(BaseModel):
    used: float = Field(default=0.0, description="Current utilization in percent")
    allocated: float = Field(default=0.0, description="Allocated to running guests")
    total: float = Field(default=0.0, description="Physical capacity")
    trend: float = Field(default=0.0, description="Second-half minus first-half mean")


class StorageKpi(BaseModel):
    used: float = Field(default=0.0, description="Bytes used")
    total: float = Field(default=0.0, description="Bytes available in total")
    trend: float = 0.0


class VmCounts(BaseModel):
    total: int = 0
    running: int = 0
    stopped: int = 0


class Kpis(BaseModel):
    cpu: ResourceKpi = Field(default_factory=ResourceKpi)
    ram: ResourceKpi = Field(default_factory=ResourceKpi)
    storage: StorageKpi = Field(default_factory=StorageKpi)
    vms: VmCounts = Field(default_factory=VmCounts)
    efficiency: float = Field(default=0.0, ge=0, le=100)


class TrendsPeriod(BaseModel):
    model_config = _CAMEL

    start: date | None = None
    end: date | None = None
    days_count: int = 0


class FetchFailure(BaseModel):
    """A fetch that failed and was degraded rather than propagated."""

    model_config = _CAMEL

    kind: Literal["connection", "inventory", "history", "deadline"]
    connection_id: str
    target: str = ""
    error: str = ""


class NodeInfo(BaseModel):
    model_config = _CAMEL

    name: str
    max_cpu: float = 0.0
    max_mem_gb: float = 0.0
    rrd_days: int = 0


OverviewState = Literal["idle", "fetching", "aggregating", "ready", "partial_failure"]


class OverviewMeta(BaseModel):
    model_config = _CAMEL

    connections_count: int = 0
    nodes_count: int = 0
    rrd_days_available: int = 0
    trends_count: int = 0
    data_source: DataSource = "empty"
    state: OverviewState = "ready"
    filtered_by_connection: str | None = None
    failures: list[FetchFailure] = Field(default_factory=list)
    diagnostics: list[StageDiagnostics] = Field(default_factory=list)
    nodes_info: list[NodeInfo] = Field(default_factory=list)


class OverviewResponse(BaseModel):
    """Everything the resource dashboard renders, computed in one pass."""

    model_config = _CAMEL

    kpis: Kpis = Field(default_factory=Kpis)
    trends: list[TrendPoint] = Field(default_factory=list)
    trends_period: TrendsPeriod = Field(default_factory=TrendsPeriod)
    top_cpu_vms: list[GuestSnapshot] = Field(default_factory=list)
    top_ram_vms: list[GuestSnapshot] = Field(default_factory=list)
    overprovisioning: OverprovisioningReport = Field(default_factory=OverprovisioningReport)
    green: GreenMetrics = Field(default_factory=GreenMetrics)
    storage_pools: list[StoragePool] = Field(default_factory=list)
    network_metrics: NetworkMetrics | None = None
    health: HealthReport = Field(default_factory=HealthReport)
    thresholds: ResourceThresholds = Field(default_factory=ResourceThresholds)
    connections: list[ClusterConnection] = Field(default_factory=list)
    meta: OverviewMeta = Field(default_factory=OverviewMeta, alias="_meta")

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict with the dashboard's camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)
