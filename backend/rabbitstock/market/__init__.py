"""Cache-and-broadcast engine for RabbitStock.

Public API:
    StockSnapshot       - Immutable cached price for one display symbol
    StockCache          - Atomic-swap in-memory price store
    Broadcaster         - Topic pub/sub registry for live connections
    PollScheduler       - Refresh cycle state machine
    PortfolioSource     - Abstract interface for upstream clients
    create_portfolio_source - Factory for the Trading 212 client
    create_stream_router - FastAPI router factory for the WebSocket endpoint
"""

from .broadcaster import SHARED_TOPIC, Broadcaster, StreamMode
from .cache import StockCache
from .factory import create_portfolio_source, create_scheduler
from .interface import PortfolioSource, UpstreamError
from .models import Instrument, PortfolioPosition, StockSnapshot, extract_symbol
from .scheduler import PollScheduler, SchedulerState, StartupError
from .stream import create_stream_router

__all__ = [
    "SHARED_TOPIC",
    "Broadcaster",
    "StreamMode",
    "StockCache",
    "create_portfolio_source",
    "create_scheduler",
    "PortfolioSource",
    "UpstreamError",
    "Instrument",
    "PortfolioPosition",
    "StockSnapshot",
    "extract_symbol",
    "PollScheduler",
    "SchedulerState",
    "StartupError",
    "create_stream_router",
]
