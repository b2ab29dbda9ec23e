# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""API response Pydantic models for the REST interface."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class OverviewEnvelope(BaseModel):
    """Response body returned by ``GET /api/v1/resources/overview``."""

    data: dict[str, Any] = Field(
        ..., description="The overview payload with camelCase keys and a _meta block."
    )


class HealthResponse(BaseModel):
    """Response body returned by the ``GET /api/v1/health`` endpoint."""

    status: str = Field(
        ..., description="Service health status (e.g. 'ok')."
    )
    version: str = Field(
        ..., description="Application version string."
    )
    connections: int = Field(
        ..., ge=0, description="Number of enabled connections in the registry."
    )
