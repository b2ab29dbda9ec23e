# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Rich terminal report renderer.

Composes Rich tables, panels and sparklines into the terminal view of a
resource overview.
"""

from __future__ import annotations

from rich.columns import Columns
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from capacity_analytics.data.models import ClusterConnection, OverviewResponse
from capacity_analytics.reporting.ascii_charts import (
    format_bytes,
    format_rate,
    score_gauge,
    sparkline,
    trend_arrow,
    usage_bar,
)

SPARKLINE_WIDTH = 40


class OverviewRenderer:
    """Renders an overview to the terminal using Rich."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def render(self, overview: OverviewResponse, show_details: bool = True) -> None:
        """Render the full overview to the terminal."""
        self._render_header(overview)
        self._render_kpis(overview)
        self._render_health(overview)
        if show_details:
            self._render_overprovisioning(overview)
            self._render_green(overview)
            self._render_storage_pools(overview)
            self._render_network(overview)
        self._render_failures(overview)

    def render_connections(self, connections: list[ClusterConnection]) -> None:
        table = Table(show_header=True, header_style="bold", padding=(0, 1))
        table.add_column("ID", style="bold")
        table.add_column("Name")
        table.add_column("Type", justify="center")
        for conn in connections:
            table.add_row(conn.id, conn.name, conn.type)
        self.console.print(table)

    # ------------------------------------------------------------------
    # Private rendering methods
    # ------------------------------------------------------------------

    def _render_header(self, overview: OverviewResponse) -> None:
        meta = overview.meta
        header = Text()
        header.append("CAPACITY OVERVIEW", style="bold cyan")
        header.append(" | ", style="dim")
        header.append(f"{meta.connections_count} connection(s)")
        header.append(f" | {meta.nodes_count} node(s)")
        header.append(f" | {overview.kpis.vms.running}/{overview.kpis.vms.total} guests running")
        header.append(" | ", style="dim")
        header.append(f"source: {meta.data_source}", style="dim")
        if meta.filtered_by_connection:
            header.append(f" | filter: {meta.filtered_by_connection}", style="dim")

        style = "yellow" if meta.state == "partial_failure" else "cyan"
        self.console.print()
        self.console.print(Panel(header, title="Resource Overview", border_style=style))

    def _render_kpis(self, overview: OverviewResponse) -> None:
        kpis = overview.kpis
        storage_pct = kpis.storage.used / kpis.storage.total * 100 if kpis.storage.total else 0.0

        table = Table(show_header=True, header_style="bold", padding=(0, 1))
        table.add_column("Resource", style="bold", min_width=8)
        table.add_column("Usage", min_width=32)
        table.add_column("Capacity", justify="right")
        table.add_column("Trend", justify="right")
        table.add_column("History", min_width=20)

        points = overview.trends
        table.add_row(
            "CPU",
            usage_bar("", kpis.cpu.used),
            f"{kpis.cpu.allocated:.0f} / {kpis.cpu.total:.0f} cores",
            trend_arrow(kpis.cpu.trend),
            sparkline([p.cpu_percent for p in points], SPARKLINE_WIDTH),
        )
        table.add_row(
            "RAM",
            usage_bar("", kpis.ram.used),
            f"{format_bytes(kpis.ram.allocated)} / {format_bytes(kpis.ram.total)}",
            trend_arrow(kpis.ram.trend),
            sparkline([p.ram_percent for p in points], SPARKLINE_WIDTH),
        )
        table.add_row(
            "Storage",
            usage_bar("", storage_pct),
            f"{format_bytes(kpis.storage.used)} / {format_bytes(kpis.storage.total)}",
            trend_arrow(kpis.storage.trend),
            sparkline(
                [p.storage_percent for p in points if p.storage_percent is not None],
                SPARKLINE_WIDTH,
            ),
        )

        self.console.print()
        self.console.print(table)
        period = overview.trends_period
        if period.start:
            self.console.print(
                f"  [dim]History: {period.start} to {period.end} ({period.days_count} days)[/]"
            )
        self.console.print(f"  [bold]Allocation efficiency:[/] {score_gauge(kpis.efficiency)}")

    def _render_health(self, overview: OverviewResponse) -> None:
        health = overview.health
        self.console.print(f"  [bold]Health score:[/]          {score_gauge(health.score)}")
        for alert in health.alerts:
            color = "red" if alert.level == "critical" else "yellow"
            self.console.print(
                f"    [{color}]• {alert.resource.upper()} {alert.level}: {alert.value:.1f}%[/]"
            )

    def _render_overprovisioning(self, overview: OverviewResponse) -> None:
        report = overview.overprovisioning

        self.console.print()
        self.console.print(Rule("[bold]OVERPROVISIONING[/bold]"))
        self.console.print(
            f"  CPU: {report.cpu.allocated:.0f} vCPU allocated on {report.cpu.physical:.0f} cores "
            f"(ratio [bold]{report.cpu.ratio:.2f}[/], efficiency {report.cpu.efficiency:.1f}%)"
        )
        self.console.print(
            f"  RAM: {report.ram.allocated:.1f} GiB allocated on {report.ram.physical:.1f} GiB "
            f"(ratio [bold]{report.ram.ratio:.2f}[/], efficiency {report.ram.efficiency:.1f}%)"
        )

        if report.per_node:
            table = Table(show_header=True, header_style="bold", padding=(0, 1))
            table.add_column("Node", style="bold")
            table.add_column("Connection", style="dim")
            table.add_column("vCPU / cores", justify="right")
            table.add_column("CPU ratio", justify="right")
            table.add_column("RAM GiB", justify="right")
            table.add_column("RAM ratio", justify="right")
            for node in report.per_node:
                table.add_row(
                    node.name,
                    node.connection_id,
                    f"{node.cpu_allocated:.0f} / {node.cpu_physical:.0f}",
                    _ratio(node.cpu_ratio),
                    f"{node.ram_allocated:.1f} / {node.ram_physical:.1f}",
                    _ratio(node.ram_ratio),
                )
            self.console.print(table)

        if report.top_overprovisioned:
            table = Table(
                title="Rightsizing candidates", show_header=True,
                header_style="bold", padding=(0, 1),
            )
            table.add_column("VM", style="bold")
            table.add_column("Node")
            table.add_column("vCPU", justify="right")
            table.add_column("RAM GB", justify="right")
            table.add_column("Savings", justify="right")
            for c in report.top_overprovisioned:
                table.add_row(
                    f"{c.name} ({c.vmid})",
                    c.node,
                    f"{c.cpu_allocated:.0f} → {c.recommended_cpu}",
                    f"{c.ram_allocated_gb:.1f} → {c.recommended_ram_gb}",
                    f"[green]{c.potential_savings.cpu:.0f} vCPU, {c.potential_savings.ram_gb:.1f} GB[/]",
                )
            self.console.print(table)

    def _render_green(self, overview: OverviewResponse) -> None:
        green = overview.green
        power = Panel(
            f"Now: [bold]{green.power.current:,.0f} W[/] (max {green.power.max:,.0f} W)\n"
            f"Month: {green.power.monthly:,.0f} kWh\nYear: {green.power.yearly:,.0f} kWh",
            title="[bold]Power[/bold]", width=34,
        )
        co2 = Panel(
            f"Year: [bold]{green.co2.yearly:,.0f} kg[/] CO2\n"
            f"= {green.co2.equivalent_km_car:,.0f} km by car\n"
            f"= {green.co2.equivalent_trees:,.1f} trees",
            title="[bold]Emissions[/bold]", width=34,
        )
        cost = Panel(
            f"Month: [bold]{green.cost.monthly:,.0f}[/]\nYear: {green.cost.yearly:,.0f}\n"
            f"@ {green.cost.price_per_kwh}/kWh",
            title="[bold]Electricity cost[/bold]", width=34,
        )
        self.console.print()
        self.console.print(Rule("[bold]GREEN IT[/bold]"))
        self.console.print(Columns([power, co2, cost], padding=(0, 1)))
        self.console.print(
            f"  [bold]Green score:[/] {score_gauge(green.efficiency.score)}  "
            f"[dim]PUE {green.efficiency.pue} | {green.efficiency.vm_per_kw} VM/kW[/]"
        )

    def _render_storage_pools(self, overview: OverviewResponse) -> None:
        if not overview.storage_pools:
            return
        table = Table(show_header=True, header_style="bold", padding=(0, 1))
        table.add_column("Pool", style="bold")
        table.add_column("Type")
        table.add_column("Usage", min_width=30)
        table.add_column("Used / Total", justify="right")
        table.add_column("Nodes", style="dim")
        for pool in overview.storage_pools:
            table.add_row(
                pool.name,
                pool.type,
                usage_bar("", pool.pct),
                f"{format_bytes(pool.used)} / {format_bytes(pool.total)}",
                ", ".join(pool.nodes),
            )
        self.console.print()
        self.console.print(Rule("[bold]STORAGE POOLS[/bold]"))
        self.console.print(table)

    def _render_network(self, overview: OverviewResponse) -> None:
        network = overview.network_metrics
        if network is None:
            return
        self.console.print()
        self.console.print(Rule("[bold]NETWORK[/bold]"))
        self.console.print(
            f"  In: [bold]{format_rate(network.total_in)}[/]  "
            f"Out: [bold]{format_rate(network.total_out)}[/]  "
            f"{sparkline([t.netin + t.netout for t in network.trends], SPARKLINE_WIDTH)}"
        )
        for vm in network.top_vms:
            self.console.print(
                f"    [dim]•[/dim] {vm.name} ({vm.node}): "
                f"{format_rate(vm.netin)} in, {format_rate(vm.netout)} out"
            )

    def _render_failures(self, overview: OverviewResponse) -> None:
        failures = overview.meta.failures
        if not failures:
            return
        self.console.print()
        self.console.print(
            f"  [yellow]Partial data: {len(failures)} fetch(es) failed[/]"
        )
        for failure in failures:
            target = f" {failure.target}" if failure.target else ""
            self.console.print(
                f"    [dim]•[/dim] {failure.kind} {failure.connection_id}{escape(target)}: {escape(failure.error)}"
            )


def _ratio(value: float) -> str:
    color = "red" if value > 1.5 else "yellow" if value > 1.0 else "green"
    return f"[{color}]{value:.2f}[/]"
