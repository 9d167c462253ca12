"""Thread-safe in-memory stock cache."""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from threading import Lock
from types import MappingProxyType

from .models import (
    UNKNOWN_CURRENCY,
    Instrument,
    PortfolioPosition,
    StockSnapshot,
    extract_symbol,
)


def now_ms() -> int:
    return int(time.time() * 1000)


class StockCache:
    """In-memory cache of the latest snapshot for each display symbol.

    Both maps are replaced wholesale: a new dict is built off to the side and
    swapped in with a single reference assignment. Dicts are never mutated
    after being published, so readers need no lock and a returned snapshot
    can never change underneath its holder.

    Writer: PollScheduler (one refresh cycle at a time).
    Readers: HTTP endpoints, WebSocket protocol handler, diagnostics.
    """

    def __init__(self) -> None:
        self._stocks: Mapping[str, StockSnapshot] = MappingProxyType({})
        self._instruments: Mapping[str, str] = MappingProxyType({})  # raw ticker -> currency
        self._lock = Lock()
        self._version: int = 0  # Bumped on every portfolio replacement
        self._last_updated: int | None = None

    def replace_instruments(self, instruments: Iterable[Instrument]) -> None:
        """Rebuild the ticker -> currency map from a full instrument list."""
        fresh = {instrument.ticker: instrument.currency_code for instrument in instruments}
        with self._lock:
            self._instruments = MappingProxyType(fresh)

    def replace_portfolio(
        self,
        positions: Iterable[PortfolioPosition],
        timestamp_ms: int | None = None,
    ) -> list[tuple[str, StockSnapshot]]:
        """Replace every cached snapshot with one built from ``positions``.

        Returns the (symbol, snapshot) pairs now live, for the caller to
        publish. Positions sharing a display symbol collapse to the last one.
        """
        ts = timestamp_ms if timestamp_ms is not None else now_ms()
        with self._lock:
            instruments = self._instruments
            fresh: dict[str, StockSnapshot] = {}
            for position in positions:
                symbol = extract_symbol(position.ticker)
                fresh[symbol] = StockSnapshot(
                    symbol=symbol,
                    price=position.current_price,
                    currency=instruments.get(position.ticker) or UNKNOWN_CURRENCY,
                    updated=ts,
                )
            self._stocks = MappingProxyType(fresh)
            self._version += 1
            self._last_updated = ts
            return list(fresh.items())

    def snapshot(self) -> Mapping[str, StockSnapshot]:
        """Read-only view of the current state. Unaffected by later replacements."""
        return self._stocks

    def get(self, symbol: str) -> StockSnapshot | None:
        return self._stocks.get(symbol)

    def symbols(self) -> frozenset[str]:
        return frozenset(self._stocks)

    def currency_for(self, ticker: str) -> str:
        """Currency code for a raw ticker, or UNKNOWN if it has no instrument."""
        return self._instruments.get(ticker) or UNKNOWN_CURRENCY

    @property
    def stock_count(self) -> int:
        return len(self._stocks)

    @property
    def instrument_count(self) -> int:
        return len(self._instruments)

    @property
    def last_updated(self) -> int | None:
        """Millisecond timestamp of the last portfolio replacement, if any."""
        return self._last_updated

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        return len(self._stocks)

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._stocks
