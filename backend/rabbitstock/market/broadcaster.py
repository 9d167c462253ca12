"""Topic-based publish/subscribe registry for live connections."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterable
from enum import Enum
from threading import Lock
from typing import Any, Protocol

from .models import StockSnapshot, stocks_payload

logger = logging.getLogger(__name__)

SHARED_TOPIC = "stocks"
DEFAULT_SEND_TIMEOUT = 5.0  # seconds a single subscriber may take to accept a frame


class StreamMode(str, Enum):
    """How refreshes are fanned out to streaming clients."""

    INTERACTIVE = "interactive"  # Clients pick symbols; one topic per symbol
    BROADCAST = "broadcast"  # Everyone joins SHARED_TOPIC; full snapshot per cycle


class Subscriber(Protocol):
    """Anything that can receive a text frame. Must hash by identity."""

    async def send_text(self, data: str) -> None: ...


class Broadcaster:
    """Registry of connection <-> topic edges with best-effort fan-out.

    Membership changes come from every connection's open/close/subscribe
    events while the scheduler publishes periodically, so the two indexes
    are only touched under a lock. publish() copies the member set before
    awaiting any send.
    """

    def __init__(
        self,
        mode: StreamMode = StreamMode.INTERACTIVE,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
    ) -> None:
        self._mode = mode
        self._send_timeout = send_timeout
        self._topics: dict[str, set[Subscriber]] = {}
        self._connections: dict[Subscriber, set[str]] = {}
        self._lock = Lock()

    @property
    def mode(self) -> StreamMode:
        return self._mode

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def connect(self, conn: Subscriber) -> None:
        """Register a live connection. In broadcast mode it joins the shared feed."""
        with self._lock:
            self._connections.setdefault(conn, set())
        if self._mode is StreamMode.BROADCAST:
            self.subscribe(conn, SHARED_TOPIC)

    def disconnect(self, conn: Subscriber) -> None:
        """Forget a connection and every subscription it holds. No-op if unknown."""
        with self._lock:
            topics = self._connections.pop(conn, set())
            for topic in topics:
                self._discard_member(topic, conn)

    def subscribe(self, conn: Subscriber, topic: str) -> bool:
        """Join ``topic``. Returns False if already a member."""
        with self._lock:
            joined = self._connections.setdefault(conn, set())
            if topic in joined:
                return False
            joined.add(topic)
            self._topics.setdefault(topic, set()).add(conn)
            return True

    def unsubscribe(self, conn: Subscriber, topic: str) -> bool:
        """Leave ``topic``. Returns False if not a member."""
        with self._lock:
            joined = self._connections.get(conn)
            if not joined or topic not in joined:
                return False
            joined.discard(topic)
            self._discard_member(topic, conn)
            return True

    def topics_for(self, conn: Subscriber) -> frozenset[str]:
        with self._lock:
            return frozenset(self._connections.get(conn, ()))

    def subscribers(self, topic: str) -> frozenset[Subscriber]:
        with self._lock:
            return frozenset(self._topics.get(topic, ()))

    async def publish(self, topic: str, message: str | dict[str, Any]) -> int:
        """Send ``message`` to every current subscriber of ``topic``.

        Returns the number of successful deliveries. Subscribers whose send
        fails or does not finish within the send timeout are disconnected.
        """
        targets = self.subscribers(topic)
        if not targets:
            return 0

        data = message if isinstance(message, str) else json.dumps(message)
        ordered = list(targets)
        results = await asyncio.gather(
            *(asyncio.wait_for(conn.send_text(data), self._send_timeout) for conn in ordered),
            return_exceptions=True,
        )

        delivered = 0
        for conn, result in zip(ordered, results):
            if isinstance(result, TimeoutError):
                logger.warning("Dropping subscriber after send timeout on %s", topic)
                self.disconnect(conn)
            elif isinstance(result, Exception):
                logger.warning("Dropping subscriber after failed send on %s: %s", topic, result)
                self.disconnect(conn)
            else:
                delivered += 1
        return delivered

    async def publish_refresh(self, written: Iterable[tuple[str, StockSnapshot]]) -> int:
        """Fan out one refresh cycle's result according to the stream mode.

        Only the pairs just written by the cache are published, never a
        re-read of the cache.
        """
        pairs = list(written)
        if self._mode is StreamMode.BROADCAST:
            return await self.publish(SHARED_TOPIC, stocks_payload(dict(pairs)))

        delivered = 0
        for symbol, snap in pairs:
            delivered += await self.publish(
                symbol,
                {"event": "update", "symbol": symbol, "data": snap.to_dict()},
            )
        return delivered

    def _discard_member(self, topic: str, conn: Subscriber) -> None:
        members = self._topics.get(topic)
        if members is None:
            return
        members.discard(conn)
        if not members:
            del self._topics[topic]
