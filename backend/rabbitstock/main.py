"""FastAPI application wiring and process entrypoint."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import create_api_router
from .config import ConfigError, Settings, load_settings
from .market import (
    Broadcaster,
    PortfolioSource,
    StockCache,
    create_portfolio_source,
    create_scheduler,
    create_stream_router,
)

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(settings: Settings, source: PortfolioSource | None = None) -> FastAPI:
    """Build the application.

    The lifespan loads instrument metadata before the server accepts traffic;
    if that fails, StartupError propagates and the server never starts.
    """
    cache = StockCache()
    broadcaster = Broadcaster(mode=settings.stream_mode, send_timeout=settings.send_timeout)
    source = source or create_portfolio_source(settings)
    scheduler = create_scheduler(settings, source, cache, broadcaster)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting RabbitStockAPI")
        try:
            await scheduler.start()
            logger.info(
                "RabbitStockAPI started: %d instruments, %d stocks, %s streaming",
                cache.instrument_count,
                cache.stock_count,
                broadcaster.mode.value,
            )
            yield
        finally:
            await scheduler.stop()
            await source.aclose()
            logger.info("RabbitStockAPI stopped")

    app = FastAPI(title="RabbitStockAPI", version="1.0.0", lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["GET"])

    app.state.cache = cache
    app.state.broadcaster = broadcaster
    app.state.scheduler = scheduler

    app.include_router(create_api_router(cache, scheduler, broadcaster))
    app.include_router(create_stream_router(cache, broadcaster, settings.proxy_preset))
    return app


def run() -> None:
    """Console entrypoint: validate config, then serve with uvicorn."""
    configure_logging()
    try:
        settings = load_settings()
    except ConfigError as e:
        logger.error("%s", e)
        sys.exit(1)

    # basicConfig already ran; only the level can change now
    logging.getLogger().setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    import uvicorn

    uvicorn.run(
        create_app(settings),
        host=settings.server_host,
        port=settings.server_port,
        lifespan="on",
    )


if __name__ == "__main__":
    run()
