# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""FastAPI router with REST endpoints for the capacity analytics API."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from capacity_analytics.api.models import HealthResponse, OverviewEnvelope
from capacity_analytics.engine import OverviewEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["capacity-analytics"])


# ---------------------------------------------------------------------------
# Dependency injection: overview engine
# ---------------------------------------------------------------------------

def get_engine(request: Request) -> OverviewEngine:
    """Return the engine attached to the application.

    Used as a FastAPI dependency so the engine can be overridden in tests
    or custom deployments.
    """
    return request.app.state.engine


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse)
async def health(engine: OverviewEngine = Depends(get_engine)) -> HealthResponse:
    """Return service health status and version information."""
    import capacity_analytics

    return HealthResponse(
        status="ok",
        version=capacity_analytics.__version__,
        connections=len(engine.registry.list()),
    )


@router.get("/resources/overview", response_model=OverviewEnvelope)
async def resources_overview(
    connection_id: str | None = Query(
        default=None,
        alias="connectionId",
        description="Restrict the overview to one connection.",
    ),
    engine: OverviewEngine = Depends(get_engine),
) -> OverviewEnvelope:
    """Compute the resource overview across all managed clusters.

    Unreachable clusters and missing history degrade the result, reported
    in ``_meta.failures``, rather than failing the request.
    """
    try:
        overview = await engine.get_resource_overview(connection_id)
    except Exception as exc:
        logger.error("Overview failed: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail=f"Overview failed: {exc}") from exc
    return OverviewEnvelope(data=overview.to_payload())
