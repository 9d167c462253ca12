"""Factories for the upstream source and the polling scheduler."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .broadcaster import Broadcaster
from .cache import StockCache
from .interface import PortfolioSource
from .scheduler import PollScheduler
from .trading212 import Trading212Client

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)


def create_portfolio_source(settings: Settings) -> PortfolioSource:
    """Create the Trading 212 client from validated settings."""
    logger.info("Portfolio source: Trading 212 at %s", settings.trading212_base_url)
    return Trading212Client(
        api_key=settings.trading212_api_key,
        api_secret=settings.trading212_api_secret,
        base_url=settings.trading212_base_url,
        timeout=settings.request_timeout,
    )


def create_scheduler(
    settings: Settings,
    source: PortfolioSource,
    cache: StockCache,
    broadcaster: Broadcaster,
) -> PollScheduler:
    """Create an unstarted scheduler. Caller must await scheduler.start()."""
    return PollScheduler(
        source=source,
        cache=cache,
        broadcaster=broadcaster,
        interval=settings.refresh_interval,
        min_interval=settings.min_refresh_interval,
        instruments_interval=settings.instruments_refresh_interval,
    )
