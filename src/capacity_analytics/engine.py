# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Overview orchestrator.

Fans the inventory and history fetches out across every connection, feeds
the results through the telemetry pipeline and the analyzers, and
assembles one :class:`OverviewResponse`.

Failure policy: a connection whose node list cannot be read contributes
nothing; a guest or storage list that cannot be read is treated as empty;
a node or storage whose history cannot be read, or is still outstanding
when the deadline elapses, has no historical data.
Each of these is logged, recorded in ``_meta.failures`` and turns the
final state into ``partial_failure``.  Only an empty registry and
unexpected errors (the settings store, for one) change the outcome of the
request itself.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import date
from typing import TypeVar

from capacity_analytics.analysis.green import calculate_green_metrics
from capacity_analytics.analysis.health import evaluate_health
from capacity_analytics.analysis.network import build_network_metrics
from capacity_analytics.analysis.overprovisioning import (
    allocation_efficiency,
    analyze_overprovisioning,
)
from capacity_analytics.analysis.storage_pools import build_storage_pools
from capacity_analytics.collectors.base import (
    ConnectionRegistry,
    MetricsClient,
    SettingsStore,
)
from capacity_analytics.config import (
    AppConfig,
    ConfigConnectionRegistry,
    ConfigSettingsStore,
    EngineSettings,
)
from capacity_analytics.data.models import (
    GIB,
    ClusterConnection,
    DayReadings,
    FetchFailure,
    GuestSnapshot,
    HardwareProfile,
    Kpis,
    NodeCapacity,
    NodeInfo,
    NodeKey,
    NodeSnapshot,
    OverviewMeta,
    OverviewResponse,
    OverviewState,
    RawSample,
    ResourceKpi,
    ResourceThresholds,
    StageDiagnostics,
    StorageKpi,
    StorageSnapshot,
    TrendsPeriod,
    VmCounts,
)
from capacity_analytics.exceptions import (
    ConnectionUnreachable,
    HistoryUnavailable,
    NoConnectionsConfigured,
)
from capacity_analytics.telemetry.daily import aggregate_node_days, aggregate_storage_days
from capacity_analytics.telemetry.densifier import (
    FlatFallbackStrategy,
    RrdWeightedStrategy,
    resolve_series,
    utc_today,
)
from capacity_analytics.telemetry.trend import calculate_trend
from capacity_analytics.telemetry.weighted import compute_global_averages

logger = logging.getLogger(__name__)

T = TypeVar("T")

ClientFactory = Callable[[ClusterConnection], MetricsClient]

TOP_VMS = 10


@dataclass
class ConnectionFetch:
    """Everything fetched from one connection during one pass.

    Filled in place so that a pass cut short by the deadline keeps what
    already arrived.
    """

    connection: ClusterConnection
    nodes: list[NodeSnapshot] = field(default_factory=list)
    guests: list[GuestSnapshot] = field(default_factory=list)
    storages: list[StorageSnapshot] = field(default_factory=list)
    node_history: dict[str, list[RawSample]] = field(default_factory=dict)
    storage_history: dict[tuple[str, str], list[RawSample]] = field(default_factory=dict)
    inventory_ready: bool = False
    history_targets: list[str] = field(default_factory=list)
    history_settled: set[str] = field(default_factory=set)

    @property
    def online_nodes(self) -> list[NodeSnapshot]:
        return [n for n in self.nodes if n.is_online]

    @property
    def available_storages(self) -> list[StorageSnapshot]:
        return [s for s in self.storages if s.is_available]

    @property
    def outstanding_history(self) -> list[str]:
        """History targets that neither returned nor failed yet."""
        return [t for t in self.history_targets if t not in self.history_settled]


class OverviewEngine:
    """Compute the resource overview across all registered connections.

    Args:
        registry: source of the managed connections.
        client_factory: returns a metrics client bound to one connection.
            The engine closes every client it creates.
        settings_store: hardware coefficients and resource thresholds.
        settings: fan-out, timeout and history window settings.
        today: returns the current UTC date; injectable for tests.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        client_factory: ClientFactory,
        settings_store: SettingsStore,
        settings: EngineSettings | None = None,
        today: Callable[[], date] = utc_today,
    ) -> None:
        self.registry = registry
        self.client_factory = client_factory
        self.settings_store = settings_store
        self.settings = settings or EngineSettings()
        self.today = today
        self.state: OverviewState = "idle"

    @classmethod
    def from_config(cls, config: AppConfig) -> OverviewEngine:
        """Engine wired to the connections, settings and clients of *config*."""
        from capacity_analytics.collectors import build_client

        def client_for(connection: ClusterConnection) -> MetricsClient:
            return build_client(config.connection(connection.id))

        return cls(
            ConfigConnectionRegistry(config),
            client_for,
            ConfigSettingsStore(config),
            settings=config.engine,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_resource_overview(
        self, connection_id: str | None = None
    ) -> OverviewResponse:
        """Run one overview pass.

        Args:
            connection_id: restrict the pass to one connection.  The
                ``connections`` list of the response still names all of them.
        """
        self.state = "fetching"
        try:
            all_connections = self._list_connections()
        except NoConnectionsConfigured:
            logger.info("No connections configured; returning empty overview")
            self.state = "ready"
            return OverviewResponse(meta=OverviewMeta(data_source="empty", state="ready"))

        selected = [
            c for c in all_connections
            if connection_id is None or c.id == connection_id
        ]
        if connection_id is not None and not selected:
            logger.warning("Connection filter %r matches no connection", connection_id)

        profile = self.settings_store.get_hardware_profile()
        thresholds = self.settings_store.get_resource_thresholds()

        failures: list[FetchFailure] = []
        fetched = await self._fetch_all(selected, failures)

        self.state = "aggregating"
        response = self._assemble(
            fetched, all_connections, selected, profile, thresholds, failures
        )
        response.meta.filtered_by_connection = connection_id

        self.state = "partial_failure" if failures else "ready"
        response.meta.state = self.state
        logger.info(
            "Overview ready: %d connection(s), %d node(s), %d trend day(s), source=%s, %d failure(s)",
            response.meta.connections_count,
            response.meta.nodes_count,
            response.meta.trends_count,
            response.meta.data_source,
            len(failures),
        )
        return response

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _list_connections(self) -> list[ClusterConnection]:
        connections = self.registry.list()
        if not connections:
            raise NoConnectionsConfigured("Connection registry is empty")
        return connections

    async def _fetch_all(
        self, connections: list[ClusterConnection], failures: list[FetchFailure]
    ) -> list[ConnectionFetch]:
        """Fetch every connection concurrently, honouring the deadline.

        When the deadline elapses, outstanding work is cancelled.  Connections
        whose inventory already arrived keep everything fetched so far and
        each unfinished history request is recorded as a history failure;
        connections still waiting on their inventory contribute nothing.
        """
        if not connections:
            return []

        # One semaphore per request bounds history fetches across connections.
        semaphore = asyncio.Semaphore(self.settings.max_concurrent_history)
        # Registry order, so the output does not depend on completion order.
        fetches = [ConnectionFetch(connection=conn) for conn in connections]
        tasks = {
            asyncio.create_task(self._fetch_connection(fetched, semaphore, failures)): fetched
            for fetched in fetches
        }
        _, pending = await asyncio.wait(tasks, timeout=self.settings.deadline_seconds)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            for task in pending:
                self._record_deadline(tasks[task], failures)

        return [fetched for fetched in fetches if fetched.inventory_ready]

    def _record_deadline(self, fetched: ConnectionFetch, failures: list[FetchFailure]) -> None:
        deadline = self.settings.deadline_seconds
        conn_id = fetched.connection.id
        error = f"deadline of {deadline}s exceeded"

        if not fetched.inventory_ready:
            logger.warning(
                "Connection %s did not list its inventory within %ss; dropped",
                conn_id, deadline,
            )
            failures.append(FetchFailure(kind="deadline", connection_id=conn_id, error=error))
            return

        for target in fetched.outstanding_history:
            logger.warning(
                "History for %s on %s cut off by the %ss deadline", target, conn_id, deadline
            )
            failures.append(
                FetchFailure(kind="history", connection_id=conn_id, target=target, error=error)
            )

    async def _fetch_connection(
        self,
        fetched: ConnectionFetch,
        semaphore: asyncio.Semaphore,
        failures: list[FetchFailure],
    ) -> None:
        """Inventory then history of one connection, filled into *fetched*."""
        conn = fetched.connection
        try:
            client = self.client_factory(conn)
        except Exception as exc:
            self._record_unreachable(ConnectionUnreachable(conn.id, str(exc)), failures)
            return

        try:
            await self._fetch_inventory(fetched, client, failures)
            await self._fetch_history(fetched, client, semaphore, failures)
        except ConnectionUnreachable as exc:
            self._record_unreachable(exc, failures)
        finally:
            try:
                await client.aclose()
            except Exception as exc:
                logger.debug("Closing client for %s failed: %s", conn.id, exc)

    @staticmethod
    def _record_unreachable(exc: ConnectionUnreachable, failures: list[FetchFailure]) -> None:
        logger.warning("%s", exc)
        failures.append(
            FetchFailure(kind="connection", connection_id=exc.connection_id, error=exc.reason)
        )

    async def _with_timeout(self, awaitable: Awaitable[T], timeout: float) -> T:
        return await asyncio.wait_for(awaitable, timeout=timeout)

    async def _fetch_inventory(
        self,
        fetched: ConnectionFetch,
        client: MetricsClient,
        failures: list[FetchFailure],
    ) -> None:
        conn = fetched.connection
        timeout = self.settings.inventory_timeout_seconds
        nodes, guests, storages = await asyncio.gather(
            self._with_timeout(client.list_nodes(), timeout),
            self._with_timeout(client.list_guests(), timeout),
            self._with_timeout(client.list_storages(), timeout),
            return_exceptions=True,
        )

        # Guests and storages are meaningless without the node capacities.
        if isinstance(nodes, BaseException):
            raise ConnectionUnreachable(conn.id, _describe(nodes))

        fetched.nodes = nodes
        for target, result in (("guests", guests), ("storages", storages)):
            if isinstance(result, BaseException):
                logger.warning(
                    "Listing %s on %s failed: %s", target, conn.id, _describe(result)
                )
                failures.append(
                    FetchFailure(
                        kind="inventory",
                        connection_id=conn.id,
                        target=target,
                        error=_describe(result),
                    )
                )
            else:
                setattr(fetched, target, result)
        fetched.inventory_ready = True

    async def _fetch_history(
        self,
        fetched: ConnectionFetch,
        client: MetricsClient,
        semaphore: asyncio.Semaphore,
        failures: list[FetchFailure],
    ) -> None:
        timeframe = self.settings.history_timeframe
        conn_id = fetched.connection.id

        async def node_series(node: str) -> None:
            samples = await self._guarded_history(
                conn_id, node, client.get_node_history(node, timeframe), semaphore, failures
            )
            fetched.history_settled.add(node)
            if samples is not None:
                fetched.node_history[node] = samples

        async def storage_series(node: str, storage: str) -> None:
            target = f"{node}/{storage}"
            samples = await self._guarded_history(
                conn_id,
                target,
                client.get_storage_history(node, storage, timeframe),
                semaphore,
                failures,
            )
            fetched.history_settled.add(target)
            if samples is not None:
                fetched.storage_history[(node, storage)] = samples

        jobs = []
        for n in fetched.online_nodes:
            fetched.history_targets.append(n.node)
            jobs.append(node_series(n.node))
        for s in fetched.available_storages:
            if s.total_bytes > 0 and s.node and s.storage_name:
                fetched.history_targets.append(f"{s.node}/{s.storage_name}")
                jobs.append(storage_series(s.node, s.storage_name))
        await asyncio.gather(*jobs)

    async def _guarded_history(
        self,
        conn_id: str,
        target: str,
        request: Awaitable[list[RawSample]],
        semaphore: asyncio.Semaphore,
        failures: list[FetchFailure],
    ) -> list[RawSample] | None:
        """Await one history request; a failure degrades to ``None``."""
        try:
            async with semaphore:
                try:
                    return await self._with_timeout(
                        request, self.settings.history_timeout_seconds
                    )
                except Exception as exc:
                    raise HistoryUnavailable(conn_id, target, _describe(exc)) from exc
        except HistoryUnavailable as exc:
            logger.warning("%s", exc)
            failures.append(
                FetchFailure(
                    kind="history", connection_id=conn_id, target=target, error=exc.reason
                )
            )
            return None

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def _assemble(
        self,
        fetched: list[ConnectionFetch],
        all_connections: list[ClusterConnection],
        selected: list[ClusterConnection],
        profile: HardwareProfile | None,
        thresholds: ResourceThresholds,
        failures: list[FetchFailure],
    ) -> OverviewResponse:
        today = self.today()

        online: dict[NodeKey, NodeSnapshot] = {}
        guests: list[GuestSnapshot] = []
        storages: list[StorageSnapshot] = []
        for item in fetched:
            for node in item.online_nodes:
                online[NodeKey(connection_id=item.connection.id, node=node.node)] = node
            guests.extend(item.guests)
            storages.extend(item.available_storages)

        # Current instantaneous totals
        cpu_capacity = sum(n.core_count for n in online.values())
        cpu_used = sum(n.cpu_ratio * n.core_count for n in online.values())
        ram_capacity = sum(n.mem_total_bytes for n in online.values())
        ram_used = sum(n.mem_used_bytes for n in online.values())
        storage_capacity = sum(s.total_bytes for s in storages)
        storage_used = sum(s.used_bytes for s in storages)

        cpu_pct = cpu_used / cpu_capacity * 100 if cpu_capacity > 0 else 0.0
        ram_pct = ram_used / ram_capacity * 100 if ram_capacity > 0 else 0.0
        storage_pct = storage_used / storage_capacity * 100 if storage_capacity > 0 else 0.0

        running = [g for g in guests if g.is_running]
        stopped = [g for g in guests if g.status == "stopped"]
        cpu_allocated = sum(g.cpu_allocated_cores for g in running)
        ram_allocated = sum(g.ram_allocated_bytes for g in running)

        # Historical pipeline
        capacities: dict[NodeKey, NodeCapacity] = {k: n.capacity for k, n in online.items()}
        node_diag = StageDiagnostics(stage="node_samples")
        nodes_by_day: dict[NodeKey, dict[date, DayReadings]] = {}
        node_history: dict[NodeKey, list[RawSample]] = {}
        cpu_values: list[float] = []
        ram_values: list[float] = []
        for item in fetched:
            for node_name, samples in item.node_history.items():
                key = NodeKey(connection_id=item.connection.id, node=node_name)
                if key not in capacities:
                    continue
                node_history[key] = samples
                by_day, diag = aggregate_node_days(samples, capacities[key])
                node_diag.merge(diag)
                nodes_by_day[key] = by_day
                for day in sorted(by_day):
                    cpu_values.extend(by_day[day].cpu)
                    ram_values.extend(by_day[day].ram)

        storage_diag = StageDiagnostics(stage="storage_samples")
        storage_by_day: dict[date, list[float]] = {}
        for item in fetched:
            live_totals = {
                (s.node, s.storage_name): s.total_bytes for s in item.available_storages
            }
            for (node_name, storage_name), samples in item.storage_history.items():
                _, diag = aggregate_storage_days(
                    samples,
                    live_totals.get((node_name, storage_name), 0.0),
                    into=storage_by_day,
                )
                storage_diag.merge(diag)
        # Today's live readings keep the series current even without history.
        for storage in storages:
            if storage.used_percent is not None:
                storage_by_day.setdefault(today, []).append(storage.used_percent)
        storage_values = [v for day in sorted(storage_by_day) for v in storage_by_day[day]]

        averages, weighted_diag = compute_global_averages(nodes_by_day, capacities)
        series = resolve_series([
            RrdWeightedStrategy(averages, storage_by_day, today),
            FlatFallbackStrategy(cpu_pct, ram_pct, storage_pct, today),
        ])

        efficiency = allocation_efficiency(
            cpu_pct, ram_pct, cpu_allocated, cpu_capacity, ram_allocated, ram_capacity
        )

        kpis = Kpis(
            cpu=ResourceKpi(
                used=round(cpu_pct, 1),
                allocated=cpu_allocated,
                total=cpu_capacity,
                trend=calculate_trend(cpu_values),
            ),
            ram=ResourceKpi(
                used=round(ram_pct, 1),
                allocated=ram_allocated,
                total=ram_capacity,
                trend=calculate_trend(ram_values),
            ),
            storage=StorageKpi(
                used=storage_used,
                total=storage_capacity,
                trend=calculate_trend(storage_values),
            ),
            vms=VmCounts(total=len(guests), running=len(running), stopped=len(stopped)),
            efficiency=efficiency,
        )

        return OverviewResponse(
            kpis=kpis,
            trends=series.points,
            trends_period=TrendsPeriod(
                start=series.period_start,
                end=series.period_end,
                days_count=series.days_count,
            ),
            top_cpu_vms=_top(running, lambda g: g.cpu_percent),
            top_ram_vms=_top(running, lambda g: g.ram_percent),
            overprovisioning=analyze_overprovisioning(online, guests, cpu_pct, ram_used),
            green=calculate_green_metrics(
                cpu_pct,
                cpu_capacity,
                ram_capacity,
                len(running),
                len(guests),
                efficiency,
                profile,
            ),
            storage_pools=build_storage_pools(storages),
            network_metrics=build_network_metrics(node_history, guests, today),
            health=evaluate_health(cpu_pct, ram_pct, storage_pct, thresholds),
            thresholds=thresholds,
            connections=all_connections,
            meta=OverviewMeta(
                connections_count=len(selected),
                nodes_count=len(capacities),
                rrd_days_available=len(averages),
                trends_count=series.days_count,
                data_source=series.data_source,
                failures=failures,
                diagnostics=[node_diag, storage_diag, weighted_diag],
                nodes_info=[
                    NodeInfo(
                        name=str(key),
                        max_cpu=cap.max_cpu_cores,
                        max_mem_gb=round(cap.max_mem_bytes / GIB),
                        rrd_days=len(nodes_by_day.get(key, {})),
                    )
                    for key, cap in capacities.items()
                ],
            ),
        )


def _describe(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "timed out"
    return str(exc) or type(exc).__name__


def _top(
    guests: Iterable[GuestSnapshot], key: Callable[[GuestSnapshot], float]
) -> list[GuestSnapshot]:
    return sorted(guests, key=key, reverse=True)[:TOP_VMS]
