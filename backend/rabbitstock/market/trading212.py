"""Trading 212 public API client."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .interface import PortfolioSource, UpstreamError
from .models import Instrument, PortfolioPosition

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://live.trading212.com"
INSTRUMENTS_PATH = "/api/v0/equity/metadata/instruments"
PORTFOLIO_PATH = "/api/v0/equity/portfolio"


class Trading212Client(PortfolioSource):
    """PortfolioSource backed by the Trading 212 REST API.

    Authenticates with HTTP basic auth (API key as username, secret as
    password). Any transport failure, non-2xx status, or malformed body
    surfaces as UpstreamError.

    Rate limits: the portfolio endpoint allows one request per 5s, which is
    why the scheduler enforces a polling floor.
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            auth=httpx.BasicAuth(api_key, api_secret),
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def get_instruments(self) -> list[Instrument]:
        rows = await self._request(INSTRUMENTS_PATH)
        return self._decode(rows, Instrument.from_api, INSTRUMENTS_PATH)

    async def get_portfolio(self) -> list[PortfolioPosition]:
        rows = await self._request(PORTFOLIO_PATH)
        return self._decode(rows, PortfolioPosition.from_api, PORTFOLIO_PATH)

    async def aclose(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()

    # --- Internal ---

    async def _request(self, path: str) -> Any:
        try:
            resp = await self._client.get(path)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamError(f"GET {path} failed: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"GET {path} failed: {e!r}") from e
        except ValueError as e:
            # resp.json() on a non-JSON body
            raise UpstreamError(f"GET {path} returned invalid JSON") from e

    @staticmethod
    def _decode(rows: Any, build, path: str) -> list:
        if not isinstance(rows, list):
            raise UpstreamError(f"GET {path} returned {type(rows).__name__}, expected list")
        try:
            return [build(row) for row in rows]
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamError(f"GET {path} returned a malformed record: {e!r}") from e
