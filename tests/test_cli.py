# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Tests for the CLI layer using Click's CliRunner."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from capacity_analytics.cli.app import cli

SNAPSHOT = Path(__file__).parent / "fixtures" / "snapshot.json"


@pytest.fixture()
def config_path(tmp_path) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(
        "connections:\n"
        "  - id: snap\n"
        "    name: Snapshot cluster\n"
        "    type: json\n"
        f"    endpoint: {SNAPSHOT}\n"
        "  - id: \"off\"\n"
        "    endpoint: https://retired:8006\n"
        "    enabled: false\n"
    )
    return str(path)


class TestCLI:
    """Tests for CLI commands."""

    def test_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "capacity-analytics" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_overview(self, config_path):
        runner = CliRunner()
        result = runner.invoke(cli, ["--no-color", "overview", "-c", config_path])
        assert result.exit_code == 0, result.output
        assert "CAPACITY OVERVIEW" in result.output
        assert "OVERPROVISIONING" in result.output
        assert "GREEN IT" in result.output
        assert "STORAGE POOLS" in result.output

    def test_overview_no_details(self, config_path):
        result = CliRunner().invoke(
            cli, ["--no-color", "overview", "-c", config_path, "--no-details"]
        )
        assert result.exit_code == 0
        assert "CAPACITY OVERVIEW" in result.output
        assert "GREEN IT" not in result.output

    def test_export_json(self, config_path, tmp_path):
        out = tmp_path / "overview.json"
        result = CliRunner().invoke(
            cli, ["overview", "-c", config_path, "--export-json", str(out)]
        )
        assert result.exit_code == 0, result.output
        payload = json.loads(out.read_text())
        assert payload["_meta"]["connectionsCount"] == 1
        assert payload["_meta"]["dataSource"] == "rrd_weighted"
        assert payload["kpis"]["vms"]["total"] == 3

    def test_connection_filter(self, config_path, tmp_path):
        out = tmp_path / "overview.json"
        result = CliRunner().invoke(
            cli,
            ["overview", "-c", config_path, "--connection", "nope", "--export-json", str(out)],
        )
        assert result.exit_code == 0
        payload = json.loads(out.read_text())
        assert payload["_meta"]["filteredByConnection"] == "nope"
        assert payload["_meta"]["dataSource"] == "fallback"

    def test_connections(self, config_path):
        result = CliRunner().invoke(cli, ["--no-color", "connections", "-c", config_path])
        assert result.exit_code == 0
        assert "snap" in result.output
        assert "Snapshot cluster" in result.output
        assert "retired" not in result.output

    def test_missing_config(self, tmp_path):
        result = CliRunner().invoke(
            cli, ["overview", "-c", str(tmp_path / "missing.yaml")]
        )
        assert result.exit_code == 1
        assert "Config file not found" in result.output

    def test_invalid_config(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("connections:\n  - name: nothing else\n")
        result = CliRunner().invoke(cli, ["connections", "-c", str(path)])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output

    def test_serve_help(self):
        result = CliRunner().invoke(cli, ["serve", "--help"])
        assert result.exit_code == 0
        assert "--port" in result.output
