"""Abstract interface for upstream portfolio sources."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .models import Instrument, PortfolioPosition


class UpstreamError(Exception):
    """An upstream fetch failed: network error, non-2xx status or undecodable body.

    All causes are treated alike by callers; there is no per-status policy.
    """


class PortfolioSource(ABC):
    """Contract for upstream brokerage clients.

    Sources are read-only and stateless from the caller's point of view.
    They never touch the StockCache; the PollScheduler applies what they
    return.

    Lifecycle:
        source = create_portfolio_source(settings)
        instruments = await source.get_instruments()
        positions = await source.get_portfolio()
        # ... app shutting down ...
        await source.aclose()
    """

    @abstractmethod
    async def get_instruments(self) -> list[Instrument]:
        """Fetch the full list of tradable instruments.

        Raises UpstreamError on any failure.
        """

    @abstractmethod
    async def get_portfolio(self) -> list[PortfolioPosition]:
        """Fetch the current open positions with live prices.

        Raises UpstreamError on any failure.
        """

    async def aclose(self) -> None:
        """Release network resources. Safe to call multiple times."""
