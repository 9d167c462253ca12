"""WebSocket streaming endpoint for live price updates."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket, status

from ..net import DEFAULT_PROXY_PRESET, client_ip
from .broadcaster import Broadcaster, StreamMode
from .cache import StockCache
from .models import stocks_payload
from .protocol import handle_message

logger = logging.getLogger(__name__)

BROADCAST_ONLY_REASON = "This feed is broadcast-only; client messages are not accepted"


class WebSocketSubscriber:
    """Broadcaster handle for one accepted WebSocket. Hashes by identity."""

    __slots__ = ("websocket", "client_ip")

    def __init__(self, websocket: WebSocket, client_ip: str) -> None:
        self.websocket = websocket
        self.client_ip = client_ip

    async def send_text(self, data: str) -> None:
        await self.websocket.send_text(data)


def create_stream_router(
    cache: StockCache,
    broadcaster: Broadcaster,
    proxy_preset: str = DEFAULT_PROXY_PRESET,
) -> APIRouter:
    """Create the WebSocket router bound to a cache and broadcaster.

    This factory pattern lets us inject collaborators without globals.
    """
    router = APIRouter(tags=["streaming"])

    @router.websocket("/ws")
    async def stream_prices(websocket: WebSocket) -> None:
        """Live price feed.

        Interactive mode: clients send {"action": "subscribe", "symbols": [...]},
        {"action": "unsubscribe", ...} or {"action": "ping"} and receive
        {"event": "update", "symbol": ..., "data": {...}} for joined symbols.

        Broadcast mode: every client gets the full {"stocks": {...}} body on
        each refresh. Any inbound message closes the socket with 1008.
        """
        await websocket.accept()
        conn = WebSocketSubscriber(websocket, client_ip(websocket, proxy_preset))
        broadcaster.connect(conn)
        logger.info("WebSocket client connected: %s (%s)", conn.client_ip, broadcaster.mode.value)

        try:
            if broadcaster.mode is StreamMode.BROADCAST:
                await _serve_broadcast(websocket, cache)
            else:
                await _serve_interactive(websocket, conn, broadcaster, cache)
        finally:
            broadcaster.disconnect(conn)
            logger.info("WebSocket client disconnected: %s", conn.client_ip)

    return router


async def _serve_interactive(
    websocket: WebSocket,
    conn: WebSocketSubscriber,
    broadcaster: Broadcaster,
    cache: StockCache,
) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
        raw = message.get("text")
        if raw is None:
            raw = message.get("bytes") or b""
        reply = handle_message(raw, conn, broadcaster, cache)
        await websocket.send_text(json.dumps(reply))


async def _serve_broadcast(websocket: WebSocket, cache: StockCache) -> None:
    # Current state first so the client doesn't wait a full interval
    await websocket.send_text(json.dumps(stocks_payload(cache.snapshot())))

    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        return
    logger.warning("Closing broadcast-only connection after inbound message")
    await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=BROADCAST_ONLY_REASON)
