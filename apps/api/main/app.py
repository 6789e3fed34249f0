"""
FastAPI application factory for the MarketDesk API.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Mapping

from fastapi import FastAPI

from apps.api.common import register_api_error_handlers
from apps.api.routes import build_board_router, build_candles_router, build_health_router
from apps.api.wiring.modules import MarketDeskRuntime, build_market_desk_runtime
from marketdesk.contexts.market_data.adapters.outbound.config import (
    MarketDeskRuntimeConfig,
    load_marketdesk_runtime_config,
)

CONFIG_PATH_ENV = "MARKETDESK_CONFIG"
DEFAULT_CONFIG_PATH = "configs/dev/marketdesk.yaml"


def create_app(
    *,
    config: MarketDeskRuntimeConfig | None = None,
    runtime: MarketDeskRuntime | None = None,
    environ: Mapping[str, str] | None = None,
) -> FastAPI:
    """
    Build FastAPI app with the market desk runtime wired at startup.

    Args:
        config: Optional parsed runtime config; loaded from `MARKETDESK_CONFIG` otherwise.
        runtime: Optional prebuilt runtime (tests pass one over fake sources).
        environ: Optional environment mapping override.
    Returns:
        FastAPI: Application instance with registered routers.
    Assumptions:
        Pollers run only while the application lifespan is active.
    Raises:
        FileNotFoundError: If the config path is missing.
        ValueError: If config parsing/validation fails.
    Side Effects:
        Reads the runtime YAML when `config` is not provided.
    """
    effective_environ = os.environ if environ is None else environ
    effective_config = config
    if effective_config is None:
        path = effective_environ.get(CONFIG_PATH_ENV, "").strip() or DEFAULT_CONFIG_PATH
        effective_config = load_marketdesk_runtime_config(path)
    effective_runtime = (
        runtime if runtime is not None else build_market_desk_runtime(config=effective_config)
    )

    @asynccontextmanager
    async def _lifespan(_app: FastAPI) -> AsyncIterator[None]:
        await effective_runtime.start()
        try:
            yield
        finally:
            await effective_runtime.stop()

    app = FastAPI(
        title="MarketDesk API",
        version="1.0.0",
        lifespan=_lifespan,
    )
    app.state.marketdesk_runtime = effective_runtime
    register_api_error_handlers(app=app)
    app.include_router(
        build_health_router(
            aggregator=effective_runtime.aggregator,
            pollers=effective_runtime.pollers,
        )
    )
    app.include_router(build_board_router(aggregator=effective_runtime.aggregator))
    app.include_router(
        build_candles_router(
            session=effective_runtime.session,
            store=effective_runtime.store,
            default_timeframe=effective_config.candles.default_timeframe,
        )
    )
    return app
