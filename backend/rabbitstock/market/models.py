"""Data models for portfolio and price data."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

UNKNOWN_CURRENCY = "UNKNOWN"


def extract_symbol(ticker: str) -> str:
    """Display symbol for a raw ticker: everything before the first '_'.

    'AAPL_US_EQ' -> 'AAPL', '' -> '', '_X' -> ''.
    """
    return ticker.split("_", 1)[0]


@dataclass(frozen=True, slots=True)
class Instrument:
    """Tradable instrument reference data from the upstream metadata endpoint."""

    ticker: str
    currency_code: str
    name: str | None = None
    short_name: str | None = None
    type: str | None = None
    isin: str | None = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> Instrument:
        """Build from the upstream camelCase JSON. Raises KeyError/TypeError on bad input."""
        return cls(
            ticker=str(data["ticker"]),
            currency_code=str(data["currencyCode"]),
            name=data.get("name"),
            short_name=data.get("shortName"),
            type=data.get("type"),
            isin=data.get("isin"),
        )


@dataclass(frozen=True, slots=True)
class PortfolioPosition:
    """One open position with its live price."""

    ticker: str
    current_price: float
    quantity: float | None = None
    average_price: float | None = None
    ppl: float | None = None
    fx_ppl: float | None = None
    initial_fill_date: str | None = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> PortfolioPosition:
        """Build from the upstream camelCase JSON. Raises KeyError/TypeError/ValueError on bad input."""
        return cls(
            ticker=str(data["ticker"]),
            current_price=float(data["currentPrice"]),
            quantity=data.get("quantity"),
            average_price=data.get("averagePrice"),
            ppl=data.get("ppl"),
            fx_ppl=data.get("fxPpl"),
            initial_fill_date=data.get("initialFillDate"),
        )


@dataclass(frozen=True, slots=True)
class StockSnapshot:
    """Immutable cached price for one display symbol."""

    symbol: str
    price: float
    currency: str
    updated: int  # Unix milliseconds

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON / WebSocket transmission."""
        return {
            "price": self.price,
            "currency": self.currency,
            "updated": self.updated,
        }


def stocks_payload(stocks: Mapping[str, StockSnapshot]) -> dict[str, Any]:
    """Render a symbol -> snapshot mapping as the public {"stocks": {...}} body."""
    return {"stocks": {symbol: snap.to_dict() for symbol, snap in stocks.items()}}
