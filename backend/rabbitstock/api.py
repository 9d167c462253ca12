"""Read-only HTTP endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter

from .market import Broadcaster, PollScheduler, StockCache
from .market.models import stocks_payload


def create_api_router(
    cache: StockCache,
    scheduler: PollScheduler,
    broadcaster: Broadcaster,
) -> APIRouter:
    """Create the status and snapshot routes. Reads never trigger a broadcast."""
    router = APIRouter(tags=["stocks"])

    @router.get("/")
    async def status() -> dict[str, Any]:
        """Health check with cache diagnostics."""
        last = cache.last_updated
        return {
            "message": "RabbitStockAPI is running",
            "stocksCount": cache.stock_count,
            "instrumentsCount": cache.instrument_count,
            "refreshInterval": int(scheduler.interval * 1000),
            "streamMode": broadcaster.mode.value,
            "schedulerState": scheduler.state.value,
            "connections": broadcaster.connection_count,
            "lastUpdate": (
                datetime.fromtimestamp(last / 1000, tz=timezone.utc).isoformat() if last else None
            ),
        }

    @router.get("/stocks")
    @router.get("/prices")
    async def stocks() -> dict[str, Any]:
        """Last successfully cached prices, possibly stale."""
        return stocks_payload(cache.snapshot())

    return router
