# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""FastAPI application factory for the capacity analytics REST API."""

from __future__ import annotations

import os
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from capacity_analytics.api.routes import router
from capacity_analytics.config import AppConfig, load_config
from capacity_analytics.engine import OverviewEngine

CONFIG_ENV_VAR = "CAPACITY_ANALYTICS_CONFIG"


def create_app(
    engine: OverviewEngine | None = None,
    config_path: str | Path | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    engine:
        Engine serving the requests.  When omitted it is built from
        *config_path*, then from the file named by ``CAPACITY_ANALYTICS_CONFIG``;
        with neither, the registry is empty and every overview is the
        empty-state response.

    Returns
    -------
    FastAPI
        A fully configured application instance with CORS middleware
        and all API routes included.
    """
    if engine is None:
        path = config_path or os.environ.get(CONFIG_ENV_VAR)
        config = load_config(path) if path else AppConfig()
        engine = OverviewEngine.from_config(config)

    app = FastAPI(
        title="Capacity Analytics API",
        description=(
            "Cluster-wide utilization trends, overprovisioning, rightsizing "
            "and power / cost / CO2 estimates for virtualization clusters."
        ),
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.engine = engine

    # CORS: allow all origins for development; tighten in production
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    return app
