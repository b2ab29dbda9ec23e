# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Main CLI application for capacity-analytics."""

from __future__ import annotations

import asyncio
import json
import logging

import click
from rich.console import Console
from rich.markup import escape

from capacity_analytics.config import AppConfig, load_config
from capacity_analytics.data.models import OverviewResponse
from capacity_analytics.engine import OverviewEngine
from capacity_analytics.exceptions import ConfigError
from capacity_analytics.reporting.terminal import OverviewRenderer


def _load(config_path: str, console: Console) -> AppConfig:
    """Load the YAML config, exiting with a readable message on failure."""
    try:
        return load_config(config_path)
    except (FileNotFoundError, ConfigError) as exc:
        console.print(f"[red]{escape(str(exc))}[/]")
        raise SystemExit(1)


def _run_overview(
    cfg: AppConfig, connection_id: str | None, console: Console
) -> OverviewResponse:
    """Run one overview pass over every enabled connection of *cfg*."""
    engine = OverviewEngine.from_config(cfg)
    with console.status("[bold cyan]Collecting cluster metrics..."):
        return asyncio.run(engine.get_resource_overview(connection_id))


@click.group()
@click.version_option(version="0.1.0")
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.option("--verbose", "-v", is_flag=True, help="Log fetch and aggregation details")
@click.pass_context
def cli(ctx: click.Context, no_color: bool, verbose: bool) -> None:
    """capacity-analytics: Cluster Capacity and Utilization Analytics

    Aggregate node, guest and storage telemetry across virtualization
    clusters into one capacity overview:

    \b
      Trends:          Capacity-weighted daily CPU / RAM / storage usage
      Rightsizing:     Overprovisioning ratios and candidate VMs
      Green IT:        Power, CO2 and electricity cost estimates
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["console"] = Console(no_color=no_color)


@cli.command()
@click.option(
    "--config", "-c", type=click.Path(), required=True,
    help="YAML config file listing the cluster connections",
)
@click.option(
    "--connection", "connection_id", type=str, default=None,
    help="Restrict the overview to one connection id",
)
@click.option(
    "--export-json", type=click.Path(), default=None,
    help="Export the overview payload as JSON at this path",
)
@click.option("--show-details/--no-details", default=True, help="Show analysis sections")
@click.pass_context
def overview(
    ctx: click.Context,
    config: str,
    connection_id: str | None,
    export_json: str | None,
    show_details: bool,
) -> None:
    """Compute and display the resource overview."""
    console: Console = ctx.obj["console"]
    cfg = _load(config, console)

    result = _run_overview(cfg, connection_id, console)

    renderer = OverviewRenderer(console)
    renderer.render(result, show_details=show_details)

    if export_json:
        _export_json(result, export_json, console)


@cli.command()
@click.option(
    "--config", "-c", type=click.Path(), required=True,
    help="YAML config file listing the cluster connections",
)
@click.pass_context
def connections(ctx: click.Context, config: str) -> None:
    """List the configured cluster connections."""
    console: Console = ctx.obj["console"]
    cfg = _load(config, console)

    registry = OverviewEngine.from_config(cfg).registry
    enabled = registry.list()
    if not enabled:
        console.print("[yellow]No enabled connections configured[/]")
        return
    OverviewRenderer(console).render_connections(enabled)


@cli.command()
@click.option(
    "--config", "-c", type=click.Path(), default=None,
    help="YAML config file; without it the API serves the empty overview",
)
@click.option("--host", default="0.0.0.0", help="Bind host")
@click.option("--port", "-p", default=8080, type=int, help="Bind port")
@click.pass_context
def serve(ctx: click.Context, config: str | None, host: str, port: int) -> None:
    """Start the REST API server."""
    console: Console = ctx.obj["console"]
    cfg = _load(config, console) if config else AppConfig()

    try:
        import uvicorn

        from capacity_analytics.api.server import create_app
    except ImportError:
        console.print("[red]The API server requires: pip install -e '.[api]'[/]")
        raise SystemExit(1)

    console.print(f"[bold cyan]Starting API server on {host}:{port}...[/]")
    app = create_app(OverviewEngine.from_config(cfg))
    uvicorn.run(app, host=host, port=port)


def _export_json(result: OverviewResponse, path: str, console: Console) -> None:
    """Export to JSON."""
    with open(path, "w") as f:
        json.dump(result.to_payload(), f, indent=2)
    console.print(f"  [green]JSON overview exported to:[/green] {path}")
