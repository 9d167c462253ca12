"""Inbound WebSocket message parsing and dispatch (interactive mode)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from .broadcaster import Broadcaster, Subscriber
from .cache import StockCache, now_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Ping:
    pass


@dataclass(frozen=True, slots=True)
class Subscribe:
    symbols: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class Unsubscribe:
    symbols: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ProtocolError:
    message: str


ClientMessage = Ping | Subscribe | Unsubscribe | ProtocolError


def parse_message(raw: str | bytes) -> ClientMessage:
    """Validate one inbound frame. Never raises; bad input becomes ProtocolError."""
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError):
        return ProtocolError("Invalid JSON")

    if not isinstance(payload, dict):
        return ProtocolError("Message must be a JSON object")

    action = payload.get("action")
    if not isinstance(action, str):
        return ProtocolError("Missing 'action' field")

    if action == "ping":
        return Ping()
    if action not in ("subscribe", "unsubscribe"):
        return ProtocolError(f"Unknown action: {action}")

    symbols = _normalize_symbols(payload.get("symbols"))
    if symbols is None:
        return ProtocolError("'symbols' must be a list of strings")
    return Subscribe(symbols) if action == "subscribe" else Unsubscribe(symbols)


def _normalize_symbols(value: Any) -> tuple[str, ...] | None:
    if not isinstance(value, list) or not all(isinstance(s, str) for s in value):
        return None
    seen: dict[str, None] = {}
    for s in value:
        symbol = s.strip()
        if symbol:
            seen.setdefault(symbol, None)
    return tuple(seen)


def handle_message(
    raw: str | bytes,
    conn: Subscriber,
    broadcaster: Broadcaster,
    cache: StockCache,
) -> dict[str, Any]:
    """Apply one inbound frame for ``conn`` and return the reply event."""
    message = parse_message(raw)

    match message:
        case Ping():
            return {"event": "pong", "timestamp": now_ms()}
        case Subscribe(symbols=symbols):
            known = cache.symbols()
            accepted = [s for s in symbols if s in known]
            for symbol in accepted:
                broadcaster.subscribe(conn, symbol)
            return {"event": "subscribed", "symbols": accepted}
        case Unsubscribe(symbols=symbols):
            held = broadcaster.topics_for(conn)
            removed = [s for s in symbols if s in held]
            for symbol in removed:
                broadcaster.unsubscribe(conn, symbol)
            return {"event": "unsubscribed", "symbols": removed}
        case ProtocolError(message=reason):
            logger.debug("Rejected client message: %s", reason)
            return {"event": "error", "message": reason}
