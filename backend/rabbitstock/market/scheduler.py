"""Poll scheduler: keeps the StockCache in step with the upstream portfolio."""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum

from .broadcaster import Broadcaster
from .cache import StockCache
from .interface import PortfolioSource, UpstreamError

logger = logging.getLogger(__name__)

# Trading 212 allows one portfolio request per 5s
DEFAULT_MIN_INTERVAL = 5.0


class SchedulerState(str, Enum):
    INITIALIZING = "initializing"
    RUNNING = "running"
    FATAL = "fatal"
    STOPPED = "stopped"


class StartupError(RuntimeError):
    """Instrument metadata could not be loaded; the service must not serve traffic."""


def resolve_interval(configured: float, floor: float = DEFAULT_MIN_INTERVAL) -> float:
    """Effective polling period in seconds. Values below ``floor`` are raised to it."""
    if configured < floor:
        logger.warning(
            "Refresh interval %.3fs is below the %.3fs minimum; using %.3fs",
            configured,
            floor,
            floor,
        )
        return floor
    return configured


def next_tick_after(scheduled: float, now: float, interval: float) -> float:
    """Next fixed-rate deadline after ``scheduled``, skipping any already in the past."""
    tick = scheduled + interval
    if tick <= now and interval > 0:
        missed = int((now - tick) // interval) + 1
        tick += missed * interval
    return tick


class PollScheduler:
    """Drives the refresh cycle.

    Lifecycle:
        scheduler = PollScheduler(source, cache, broadcaster, interval=10.0)
        await scheduler.start()   # raises StartupError if instruments fail
        # ... app runs ...
        await scheduler.stop()

    The poll loop awaits each cycle before scheduling the next tick, and
    refresh() is single-flight, so no two portfolio fetches are ever in
    flight together. Publishing runs after the fetch lock is released and
    is serialized on its own lock, so cycles reach subscribers in order.
    """

    def __init__(
        self,
        source: PortfolioSource,
        cache: StockCache,
        broadcaster: Broadcaster,
        interval: float = 10.0,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        instruments_interval: float = 0.0,
    ) -> None:
        self._source = source
        self._cache = cache
        self._broadcaster = broadcaster
        self._interval = resolve_interval(interval, min_interval)
        self._instruments_interval = instruments_interval
        self._state = SchedulerState.INITIALIZING
        self._refresh_lock = asyncio.Lock()
        self._publish_lock = asyncio.Lock()  # Keeps cycles published in cache order
        self._tasks: list[asyncio.Task] = []

        self.last_success: float | None = None  # Unix seconds
        self.last_error: str | None = None
        self.consecutive_failures: int = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def interval(self) -> float:
        """Effective polling period in seconds, after the floor is applied."""
        return self._interval

    async def start(self) -> None:
        """Load instruments, do a first refresh, then start polling."""
        try:
            instruments = await self._source.get_instruments()
        except UpstreamError as e:
            self._state = SchedulerState.FATAL
            logger.error("Failed to load instrument metadata: %s", e)
            raise StartupError("Instrument metadata unavailable") from e

        self._cache.replace_instruments(instruments)
        logger.info("Loaded %d instruments", len(instruments))

        # Immediate first refresh so the cache has data right away
        await self.refresh()

        self._tasks.append(asyncio.create_task(self._poll_loop(), name="portfolio-poller"))
        if self._instruments_interval > 0:
            self._tasks.append(
                asyncio.create_task(self._instruments_loop(), name="instruments-poller")
            )
        self._state = SchedulerState.RUNNING
        logger.info("Portfolio poller started: %.1fs interval", self._interval)

    async def stop(self) -> None:
        for task in self._tasks:
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._tasks.clear()
        if self._state is not SchedulerState.FATAL:
            self._state = SchedulerState.STOPPED
        logger.info("Portfolio poller stopped")

    async def refresh(self) -> bool:
        """Run one refresh cycle. Returns True if the cache was replaced.

        A cycle requested while another is in flight is skipped.
        """
        if self._refresh_lock.locked():
            logger.debug("Refresh already in flight; skipping tick")
            return False

        async with self._refresh_lock:
            try:
                positions = await self._source.get_portfolio()
            except UpstreamError as e:
                self.consecutive_failures += 1
                self.last_error = str(e)
                logger.error("Portfolio refresh failed: %s", e)
                return False

            written = self._cache.replace_portfolio(positions)
            self.last_success = time.time()
            self.last_error = None
            self.consecutive_failures = 0
            logger.debug("Updated %d stock prices", len(written))

        # Fan-out happens outside the refresh lock so a slow subscriber
        # cannot hold up the next fetch.
        async with self._publish_lock:
            await self._broadcaster.publish_refresh(written)
        return True

    async def refresh_instruments(self) -> bool:
        """Reload instrument metadata. Failures after startup are logged, not raised."""
        try:
            instruments = await self._source.get_instruments()
        except UpstreamError as e:
            logger.error("Instrument refresh failed: %s", e)
            return False
        self._cache.replace_instruments(instruments)
        logger.debug("Reloaded %d instruments", len(instruments))
        return True

    # --- Internal ---

    async def _poll_loop(self) -> None:
        """Poll at a fixed rate. First refresh already happened in start().

        Ticks are scheduled from the loop clock, not from the end of the
        previous cycle, so fetch latency does not stretch the period. Ticks
        missed by an overrunning cycle are dropped rather than bunched up.
        """
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self._interval
        while True:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            try:
                await self.refresh()
            except Exception:
                logger.exception("Refresh cycle crashed")
            next_tick = next_tick_after(next_tick, loop.time(), self._interval)

    async def _instruments_loop(self) -> None:
        while True:
            await asyncio.sleep(self._instruments_interval)
            await self.refresh_instruments()
