"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio

import pytest

from rabbitstock.market.interface import PortfolioSource, UpstreamError
from rabbitstock.market.models import Instrument, PortfolioPosition


class FakeSubscriber:
    """In-memory connection that records every frame sent to it."""

    def __init__(self, name: str = "conn", fail: bool = False, stuck: bool = False) -> None:
        self.name = name
        self.fail = fail
        self.stuck = stuck  # Never finishes a send, like a client that stopped reading
        self.sent: list[str] = []

    async def send_text(self, data: str) -> None:
        if self.stuck:
            await asyncio.Event().wait()
        if self.fail:
            raise ConnectionError(f"{self.name} is gone")
        self.sent.append(data)

    def __repr__(self) -> str:
        return f"FakeSubscriber({self.name!r})"


class FakeSource(PortfolioSource):
    """Scriptable upstream. Each get_portfolio() pops the next scripted result."""

    def __init__(
        self,
        instruments: list[Instrument] | Exception | None = None,
        portfolios: list[list[PortfolioPosition] | Exception] | None = None,
    ) -> None:
        self.instruments = instruments if instruments is not None else []
        self.portfolios = list(portfolios or [])
        self.instrument_calls = 0
        self.portfolio_calls = 0
        self.gate: asyncio.Event | None = None  # When set, get_portfolio waits on it
        self.delay = 0.0  # Simulated fetch latency in seconds
        self.call_times: list[float] = []  # Loop clock at each get_portfolio call
        self.closed = False

    async def get_instruments(self) -> list[Instrument]:
        self.instrument_calls += 1
        if isinstance(self.instruments, Exception):
            raise self.instruments
        return list(self.instruments)

    async def get_portfolio(self) -> list[PortfolioPosition]:
        self.portfolio_calls += 1
        self.call_times.append(asyncio.get_running_loop().time())
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.portfolios:
            raise UpstreamError("no scripted portfolio")
        result = self.portfolios.pop(0) if len(self.portfolios) > 1 else self.portfolios[0]
        if isinstance(result, Exception):
            raise result
        return list(result)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def make_subscriber():
    """Factory for FakeSubscriber connections."""
    return FakeSubscriber


@pytest.fixture
def make_source():
    """Factory for FakeSource upstreams."""
    return FakeSource


@pytest.fixture
def aapl_instruments() -> list[Instrument]:
    return [
        Instrument(ticker="AAPL_US_EQ", currency_code="USD"),
        Instrument(ticker="VOD_GB_EQ", currency_code="GBX"),
    ]
