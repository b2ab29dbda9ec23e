# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Configuration model, YAML loader and config-backed collaborators."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from capacity_analytics.data.models import (
    ClusterConnection,
    HardwareProfile,
    ResourceThresholds,
)
from capacity_analytics.exceptions import ConfigError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Credential handling
# ---------------------------------------------------------------------------

class CredentialRef(BaseModel):
    """Reference to credentials: env var, file path, or inline."""

    env_var: str | None = Field(default=None, description="Environment variable name")
    file_path: str | None = Field(default=None, description="Path to credentials file")
    value: str | None = Field(default=None, description="Inline value (dev only)")

    def resolve(self) -> str:
        """Resolve the credential to a plain string."""
        if self.env_var:
            val = os.environ.get(self.env_var)
            if val:
                return val
        if self.file_path:
            path = Path(self.file_path).expanduser()
            if path.exists():
                return path.read_text().strip()
        if self.value:
            return self.value
        raise ConfigError(
            "Could not resolve credential: none of env_var, file_path, or value produced a result"
        )


# ---------------------------------------------------------------------------
# Connection configuration
# ---------------------------------------------------------------------------

class ConnectionConfig(BaseModel):
    """One managed cluster endpoint."""

    id: str = Field(..., min_length=1, description="Unique connection identifier")
    name: str = Field(default="", description="Display name, defaults to the id")
    type: str = Field(default="pve", description="Metrics client type: pve, json")
    endpoint: str = Field(
        ..., description="Base URL (https://host:8006) or, for json, a snapshot file path"
    )
    credentials: CredentialRef | None = Field(default=None)
    verify_ssl: bool = Field(default=True)
    timeout_seconds: float = Field(default=15.0, gt=0)
    enabled: bool = Field(default=True)
    options: dict[str, Any] = Field(
        default_factory=dict, description="Client-specific options"
    )

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def to_connection(self) -> ClusterConnection:
        return ClusterConnection(id=self.id, name=self.display_name, type=self.type)


class EngineSettings(BaseModel):
    """Fan-out, timeout and history window settings of the overview pass."""

    history_timeframe: str = Field(
        default="year", description="RRD timeframe: hour, day, week, month, year"
    )
    max_concurrent_history: int = Field(default=16, ge=1)
    history_timeout_seconds: float = Field(default=10.0, gt=0)
    inventory_timeout_seconds: float = Field(default=15.0, gt=0)
    deadline_seconds: float | None = Field(
        default=None, gt=0, description="Overall budget for one overview pass"
    )


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------

class AppConfig(BaseModel):
    """Top-level configuration loaded from YAML."""

    connections: list[ConnectionConfig] = Field(default_factory=list)
    hardware: HardwareProfile | None = Field(default=None)
    thresholds: ResourceThresholds = Field(default_factory=ResourceThresholds)
    engine: EngineSettings = Field(default_factory=EngineSettings)

    def connection(self, connection_id: str) -> ConnectionConfig:
        for conn in self.connections:
            if conn.id == connection_id:
                return conn
        raise KeyError(f"Unknown connection '{connection_id}'")


def load_config(path: str | Path) -> AppConfig:
    """Load an AppConfig from a YAML file.

    Raises:
        FileNotFoundError: the file does not exist.
        ConfigError: the file is not valid YAML or does not match the model.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

    try:
        config = AppConfig.model_validate(raw or {})
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {config_path}:\n{exc}") from exc

    ids = [c.id for c in config.connections]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ConfigError(f"Duplicate connection ids: {', '.join(duplicates)}")

    logger.debug("Loaded %d connection(s) from %s", len(ids), config_path)
    return config


# ---------------------------------------------------------------------------
# Config-backed collaborators
# ---------------------------------------------------------------------------

class ConfigConnectionRegistry:
    """Connection registry over the ``connections`` section."""

    def __init__(self, config: AppConfig) -> None:
        self.config = config

    def list(self) -> list[ClusterConnection]:
        return [c.to_connection() for c in self.config.connections if c.enabled]


class ConfigSettingsStore:
    """Settings store over the ``hardware`` and ``thresholds`` sections."""

    def __init__(self, config: AppConfig) -> None:
        self.config = config

    def get_hardware_profile(self) -> HardwareProfile | None:
        return self.config.hardware

    def get_resource_thresholds(self) -> ResourceThresholds:
        return self.config.thresholds
