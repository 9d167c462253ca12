"""Tests for the Broadcaster registry."""

import asyncio
import json

import pytest

from rabbitstock.market.broadcaster import SHARED_TOPIC, Broadcaster, StreamMode
from rabbitstock.market.models import StockSnapshot


def _snap(symbol: str, price: float, updated: int = 1) -> StockSnapshot:
    return StockSnapshot(symbol=symbol, price=price, currency="USD", updated=updated)


class TestMembership:
    """Subscribe / unsubscribe / disconnect bookkeeping."""

    def test_subscribe_is_idempotent(self, make_subscriber):
        broadcaster = Broadcaster()
        conn = make_subscriber()
        assert broadcaster.subscribe(conn, "AAPL") is True
        assert broadcaster.subscribe(conn, "AAPL") is False
        assert broadcaster.subscribers("AAPL") == frozenset({conn})

    def test_unsubscribe_is_idempotent(self, make_subscriber):
        broadcaster = Broadcaster()
        conn = make_subscriber()
        broadcaster.subscribe(conn, "AAPL")
        assert broadcaster.unsubscribe(conn, "AAPL") is True
        assert broadcaster.unsubscribe(conn, "AAPL") is False
        assert broadcaster.subscribers("AAPL") == frozenset()

    def test_unsubscribe_unknown_connection(self, make_subscriber):
        broadcaster = Broadcaster()
        assert broadcaster.unsubscribe(make_subscriber(), "AAPL") is False

    def test_disconnect_drops_all_topics(self, make_subscriber):
        broadcaster = Broadcaster()
        conn = make_subscriber()
        broadcaster.connect(conn)
        broadcaster.subscribe(conn, "AAPL")
        broadcaster.subscribe(conn, "MSFT")

        broadcaster.disconnect(conn)

        assert broadcaster.topics_for(conn) == frozenset()
        assert broadcaster.subscribers("AAPL") == frozenset()
        assert broadcaster.subscribers("MSFT") == frozenset()
        assert broadcaster.connection_count == 0

    def test_disconnect_unknown_is_noop(self, make_subscriber):
        Broadcaster().disconnect(make_subscriber())  # Should not raise

    def test_interactive_connect_joins_nothing(self, make_subscriber):
        broadcaster = Broadcaster(StreamMode.INTERACTIVE)
        conn = make_subscriber()
        broadcaster.connect(conn)
        assert broadcaster.topics_for(conn) == frozenset()
        assert broadcaster.connection_count == 1

    def test_broadcast_connect_joins_shared_topic(self, make_subscriber):
        broadcaster = Broadcaster(StreamMode.BROADCAST)
        conn = make_subscriber()
        broadcaster.connect(conn)
        assert broadcaster.topics_for(conn) == frozenset({SHARED_TOPIC})


@pytest.mark.asyncio
class TestPublish:
    """Fan-out delivery."""

    async def test_publish_reaches_exactly_the_subscribers(self, make_subscriber):
        broadcaster = Broadcaster()
        a, b, c = make_subscriber("a"), make_subscriber("b"), make_subscriber("c")
        broadcaster.subscribe(a, "AAPL")
        broadcaster.subscribe(b, "AAPL")
        broadcaster.subscribe(c, "MSFT")

        delivered = await broadcaster.publish("AAPL", {"event": "update"})

        assert delivered == 2
        assert a.sent == ['{"event": "update"}']
        assert b.sent == ['{"event": "update"}']
        assert c.sent == []

    async def test_publish_without_subscribers(self):
        assert await Broadcaster().publish("AAPL", "hello") == 0

    async def test_publish_string_is_sent_verbatim(self, make_subscriber):
        broadcaster = Broadcaster()
        conn = make_subscriber()
        broadcaster.subscribe(conn, "AAPL")
        await broadcaster.publish("AAPL", "raw-frame")
        assert conn.sent == ["raw-frame"]

    async def test_failed_send_drops_connection(self, make_subscriber):
        broadcaster = Broadcaster()
        good = make_subscriber("good")
        dead = make_subscriber("dead", fail=True)
        broadcaster.subscribe(good, "AAPL")
        broadcaster.subscribe(dead, "AAPL")

        delivered = await broadcaster.publish("AAPL", "x")

        assert delivered == 1
        assert broadcaster.subscribers("AAPL") == frozenset({good})
        assert broadcaster.topics_for(dead) == frozenset()

    async def test_unsubscribed_connection_gets_nothing(self, make_subscriber):
        broadcaster = Broadcaster()
        conn = make_subscriber()
        broadcaster.subscribe(conn, "AAPL")
        broadcaster.unsubscribe(conn, "AAPL")
        await broadcaster.publish("AAPL", "x")
        assert conn.sent == []


@pytest.mark.asyncio
class TestPublishRefresh:
    """Mode-dependent refresh fan-out."""

    async def test_interactive_publishes_per_symbol(self, make_subscriber):
        broadcaster = Broadcaster(StreamMode.INTERACTIVE)
        aapl_fan, msft_fan = make_subscriber("aapl"), make_subscriber("msft")
        broadcaster.subscribe(aapl_fan, "AAPL")
        broadcaster.subscribe(msft_fan, "MSFT")

        await broadcaster.publish_refresh([("AAPL", _snap("AAPL", 150.25)), ("MSFT", _snap("MSFT", 420.0))])

        assert [json.loads(m) for m in aapl_fan.sent] == [
            {"event": "update", "symbol": "AAPL", "data": {"price": 150.25, "currency": "USD", "updated": 1}}
        ]
        assert [json.loads(m)["symbol"] for m in msft_fan.sent] == ["MSFT"]

    async def test_broadcast_publishes_one_full_message(self, make_subscriber):
        broadcaster = Broadcaster(StreamMode.BROADCAST)
        conn = make_subscriber()
        broadcaster.connect(conn)

        await broadcaster.publish_refresh([("AAPL", _snap("AAPL", 150.25)), ("MSFT", _snap("MSFT", 420.0))])

        assert len(conn.sent) == 1
        body = json.loads(conn.sent[0])
        assert set(body["stocks"]) == {"AAPL", "MSFT"}
        assert body["stocks"]["AAPL"]["price"] == 150.25

    async def test_broadcast_mode_ignores_symbol_topics(self, make_subscriber):
        broadcaster = Broadcaster(StreamMode.BROADCAST)
        conn = make_subscriber()
        broadcaster.subscribe(conn, "AAPL")  # not on the shared feed

        await broadcaster.publish_refresh([("AAPL", _snap("AAPL", 150.25))])

        assert conn.sent == []


@pytest.mark.asyncio
class TestSendTimeout:
    """Subscribers that stop reading are dropped instead of stalling fan-out."""

    async def test_stuck_subscriber_is_dropped(self, make_subscriber):
        broadcaster = Broadcaster(send_timeout=0.05)
        good = make_subscriber("good")
        stuck = make_subscriber("stuck", stuck=True)
        broadcaster.subscribe(good, "AAPL")
        broadcaster.subscribe(stuck, "AAPL")

        delivered = await asyncio.wait_for(broadcaster.publish("AAPL", "x"), 1.0)

        assert delivered == 1
        assert good.sent == ["x"]
        assert broadcaster.subscribers("AAPL") == frozenset({good})
        assert broadcaster.topics_for(stuck) == frozenset()
