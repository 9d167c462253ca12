"""Tests for the source and scheduler factories."""

import os
from unittest.mock import patch

from rabbitstock.config import Settings
from rabbitstock.market.broadcaster import Broadcaster
from rabbitstock.market.cache import StockCache
from rabbitstock.market.factory import create_portfolio_source, create_scheduler
from rabbitstock.market.trading212 import Trading212Client


def _settings(**env) -> Settings:
    base = {"TRADING212_API_KEY": "test-key", "TRADING212_API_SECRET": "test-secret"}
    with patch.dict(os.environ, {**base, **env}, clear=True):
        return Settings(_env_file=None)


class TestFactory:
    """Tests for create_portfolio_source / create_scheduler."""

    def test_creates_trading212_client(self):
        source = create_portfolio_source(_settings())
        assert isinstance(source, Trading212Client)
        assert source.base_url == "https://live.trading212.com"

    def test_client_receives_base_url(self):
        source = create_portfolio_source(_settings(TRADING212_BASE_URL="https://demo.trading212.com/"))
        assert source.base_url == "https://demo.trading212.com"

    def test_scheduler_uses_configured_interval(self):
        settings = _settings(REFRESH_INTERVAL_MS="12000")
        scheduler = create_scheduler(settings, create_portfolio_source(settings), StockCache(), Broadcaster())
        assert scheduler.interval == 12.0

    def test_scheduler_enforces_floor(self):
        settings = _settings(REFRESH_INTERVAL_MS="2000", MIN_REFRESH_INTERVAL_MS="5000")
        scheduler = create_scheduler(settings, create_portfolio_source(settings), StockCache(), Broadcaster())
        assert scheduler.interval == 5.0
