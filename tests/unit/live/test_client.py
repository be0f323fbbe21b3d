"""
Unit tests for LivePriceWebSocketClient: subscribe/unsubscribe wire
deltas, tick fan-out, malformed frames and close semantics.
"""

import asyncio
import gc
import logging
import warnings

import pytest
import pytest_asyncio

from laplace.live.client import LivePriceWebSocketClient
from laplace.live.config import WebSocketOptions
from laplace.live.errors import CloseError
from laplace.live.types import BistTick, CloseReason, ConnectionState, Feed, Tick, UsTick

URL = "wss://stream.example.test/ws?token=abc"


def bist_frame(symbol: str, price: float, feed: str = "live_price_tr") -> dict:
    return {
        "type": "data",
        "feed": feed,
        "message": {"_id": "id-1", "symbol": symbol, "cl": price, "c": 0.5, "d": 1, "_i": "7"},
    }


@pytest_asyncio.fixture
async def client(connector, fast_options):
    ws_client = LivePriceWebSocketClient(fast_options, connector=connector, name="test_client")
    await ws_client.connect(URL)
    yield ws_client
    await ws_client.close()


class TestSubscribe:
    """Tests for wire deltas produced by subscribe/unsubscribe."""

    @pytest.mark.asyncio
    async def test_subscribe_sends_new_symbols(self, client, connector, wait_until) -> None:
        client.subscribe(["AKBNK", "THYAO"], Feed.LIVE_BIST, lambda tick: None)

        await wait_until(lambda: len(connector.current.sent) == 1)
        assert connector.current.sent == [
            {"type": "subscribe", "symbols": ["AKBNK", "THYAO"], "feed": "live_price_tr"}
        ]

    @pytest.mark.asyncio
    async def test_covered_symbols_are_not_resent(self, client, connector, wait_until) -> None:
        client.subscribe(["AKBNK"], Feed.LIVE_BIST, lambda tick: None)
        client.subscribe(["AKBNK", "ASELS"], Feed.LIVE_BIST, lambda tick: None)

        await wait_until(lambda: len(connector.current.sent) == 2)
        assert [f["symbols"] for f in connector.current.sent] == [["AKBNK"], ["ASELS"]]

    @pytest.mark.asyncio
    async def test_unsubscribe_sends_uncovered_symbols(self, client, connector, wait_until) -> None:
        first = client.subscribe(["AKBNK", "THYAO"], Feed.LIVE_BIST, lambda tick: None)
        client.subscribe(["THYAO"], Feed.LIVE_BIST, lambda tick: None)
        await wait_until(lambda: len(connector.current.sent) == 1)

        first()
        await wait_until(lambda: len(connector.current.sent) == 2)

        assert connector.current.sent[1] == {
            "type": "unsubscribe",
            "symbols": ["AKBNK"],
            "feed": "live_price_tr",
        }

    @pytest.mark.asyncio
    async def test_unsubscribe_twice_is_harmless(self, client, connector, wait_until) -> None:
        unsubscribe = client.subscribe(["AAPL"], Feed.LIVE_US, lambda tick: None)
        unsubscribe()
        unsubscribe()

        await wait_until(lambda: len(connector.current.sent) == 2)
        await asyncio.sleep(0.01)
        assert [f["type"] for f in connector.current.sent] == ["subscribe", "unsubscribe"]

    @pytest.mark.asyncio
    async def test_empty_subscribe_never_sends(self, client, connector) -> None:
        unsubscribe = client.subscribe([], Feed.LIVE_BIST, lambda tick: None)
        unsubscribe()
        await asyncio.sleep(0.01)

        assert connector.current.sent == []
        assert len(client.registry) == 0

    @pytest.mark.asyncio
    async def test_send_failure_is_logged_not_raised(self, connector, fast_options, caplog) -> None:
        ws_client = LivePriceWebSocketClient(fast_options, connector=connector, name="test_client")

        with caplog.at_level(logging.ERROR, logger="laplace.live.client"):
            unsubscribe = ws_client.subscribe(["AKBNK"], Feed.LIVE_BIST, lambda tick: None)
            await asyncio.sleep(0.01)

        assert callable(unsubscribe)
        assert "Failed to subscribe" in caplog.text
        assert "not initialized" in caplog.text
        assert len(ws_client.registry) == 1
        await ws_client.close()

    def test_subscribe_without_running_loop(self, connector, fast_options, caplog) -> None:
        """Set-up code outside the event loop keeps a usable subscription."""
        ws_client = LivePriceWebSocketClient(fast_options, connector=connector, name="test_client")

        with warnings.catch_warnings(record=True) as caught, caplog.at_level(logging.WARNING):
            warnings.simplefilter("always")
            unsubscribe = ws_client.subscribe(["AKBNK"], Feed.LIVE_BIST, lambda tick: None)
            assert len(ws_client.registry) == 1
            assert ws_client.registry.aggregate_by_feed() == {Feed.LIVE_BIST: frozenset({"AKBNK"})}

            unsubscribe()
            gc.collect()

        assert len(ws_client.registry) == 0
        assert "No running event loop, subscribe not sent" in caplog.text
        assert "No running event loop, unsubscribe not sent" in caplog.text
        assert not [w for w in caught if "never awaited" in str(w.message)]


class TestFanOut:
    """Tests for tick delivery."""

    @pytest.mark.asyncio
    async def test_ticks_reach_matching_handlers_only(self, client, connector, wait_until) -> None:
        live: list[Tick] = []
        delayed: list[Tick] = []
        us: list[Tick] = []
        client.subscribe(["AKBNK"], Feed.LIVE_BIST, live.append)
        client.subscribe(["AKBNK"], Feed.DELAYED_BIST, delayed.append)
        client.subscribe(["AAPL"], Feed.LIVE_US, us.append)

        connector.current.push_json(bist_frame("AKBNK", 51.25))
        connector.current.push_json(
            {"type": "data", "feed": "live_price_us", "message": {"s": "AAPL", "p": 190.0, "t": 5}}
        )
        connector.current.push_json(bist_frame("THYAO", 300.0))
        await wait_until(lambda: len(live) == 1 and len(us) == 1)
        await asyncio.sleep(0.01)

        assert live == [
            BistTick(
                symbol="AKBNK",
                close_price=51.25,
                percent_change=0.5,
                timestamp=1,
                tip_id="7",
                id="id-1",
            )
        ]
        assert delayed == []
        assert us == [UsTick(symbol="AAPL", close_price=190.0, timestamp=5)]

    @pytest.mark.asyncio
    async def test_shared_symbol_survives_one_unsubscribe(
        self, client, connector, wait_until
    ) -> None:
        """Reference counting: the remaining handler keeps receiving ticks."""
        first: list[Tick] = []
        second: list[Tick] = []
        unsubscribe_first = client.subscribe(["AKBNK"], Feed.LIVE_BIST, first.append)
        client.subscribe(["AKBNK"], Feed.LIVE_BIST, second.append)

        unsubscribe_first()
        connector.current.push_json(bist_frame("AKBNK", 52.0))
        await wait_until(lambda: len(second) == 1)

        assert first == []
        await asyncio.sleep(0.01)
        assert [f["type"] for f in connector.current.sent] == ["subscribe"]

    @pytest.mark.asyncio
    async def test_malformed_frames_are_dropped(
        self, client, connector, wait_until, caplog
    ) -> None:
        received: list[Tick] = []
        client.subscribe(["AKBNK"], Feed.LIVE_BIST, received.append)

        with caplog.at_level(logging.DEBUG, logger="laplace.live.client"):
            connector.current.push_text("{definitely not json")
            connector.current.push_json({"type": "data", "feed": "live_price_tr"})
            connector.current.push_json({"type": "mystery"})
            connector.current.push_json({"type": "heartbeat"})
            connector.current.push_json({"type": "warning", "message": "slow consumer"})
            connector.current.push_json({"type": "error", "message": "bad symbol"})
            connector.current.push_json(bist_frame("AKBNK", 53.0))
            await wait_until(lambda: len(received) == 1)

        assert received[0].close_price == 53.0
        assert client.state == ConnectionState.OPEN
        assert "Failed to parse WebSocket message" in caplog.text
        assert "Unknown message type: mystery" in caplog.text
        assert "Received warning: slow consumer" in caplog.text
        assert "Received error: bad symbol" in caplog.text

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(
        self, client, connector, wait_until
    ) -> None:
        received: list[Tick] = []

        def broken(tick: Tick) -> None:
            raise RuntimeError("handler bug")

        client.subscribe(["AKBNK"], Feed.LIVE_BIST, broken)
        client.subscribe(["AKBNK"], Feed.LIVE_BIST, received.append)

        connector.current.push_json(bist_frame("AKBNK", 54.0))
        await wait_until(lambda: len(received) == 1)


class TestReconnect:
    @pytest.mark.asyncio
    async def test_reconnect_replays_registry(self, client, connector, wait_until) -> None:
        client.subscribe(["AKBNK"], Feed.LIVE_BIST, lambda tick: None)
        gone = client.subscribe(["THYAO"], Feed.LIVE_BIST, lambda tick: None)
        await wait_until(lambda: len(connector.current.sent) == 2)

        connector.gate = asyncio.Event()
        connector.current.drop()
        await wait_until(lambda: connector.calls == 2)

        # Sends issued mid-handshake wait for it, then go out on the new socket
        gone()
        client.subscribe(["AAPL"], Feed.DELAYED_US, lambda tick: None)
        await asyncio.sleep(0.01)
        connector.gate.set()

        await wait_until(lambda: len(connector.sockets) == 2 and len(connector.current.sent) == 4)
        sent = connector.current.sent
        subscribed = {(f["feed"], tuple(f["symbols"])) for f in sent if f["type"] == "subscribe"}
        assert subscribed == {("delayed_price_us", ("AAPL",)), ("live_price_tr", ("AKBNK",))}
        assert {"type": "unsubscribe", "symbols": ["THYAO"], "feed": "live_price_tr"} in sent


class TestClose:
    @pytest.mark.asyncio
    async def test_close_clears_subscriptions(self, connector, fast_options) -> None:
        ws_client = LivePriceWebSocketClient(fast_options, connector=connector)
        await ws_client.connect(URL)
        ws_client.subscribe(["AKBNK"], Feed.LIVE_BIST, lambda tick: None)

        await ws_client.close()

        assert len(ws_client.registry) == 0
        assert ws_client.is_connection_closed() is True
        assert ws_client.get_close_reason() == CloseReason.NORMAL_CLOSURE

    @pytest.mark.asyncio
    async def test_close_clears_subscriptions_on_close_error(self, connector, fast_options) -> None:
        ws_client = LivePriceWebSocketClient(fast_options, connector=connector)
        await ws_client.connect(URL)
        ws_client.subscribe(["AKBNK"], Feed.LIVE_BIST, lambda tick: None)
        connector.current.fail_close = True

        with pytest.raises(CloseError):
            await ws_client.close()

        assert len(ws_client.registry) == 0

    @pytest.mark.asyncio
    async def test_max_reconnect_reason(self, connector, wait_until) -> None:
        options = WebSocketOptions(
            reconnect_attempts=2, reconnect_delay_s=0.001, max_reconnect_delay_s=0.001
        )
        ws_client = LivePriceWebSocketClient(options, connector=connector)
        await ws_client.connect(URL)
        connector.fail = True

        connector.current.drop()
        await wait_until(lambda: ws_client.get_close_reason() is not None)

        assert ws_client.get_close_reason() == CloseReason.MAX_RECONNECT_EXCEEDED
        assert ws_client.state == ConnectionState.CLOSED
        assert connector.calls == 3
        await ws_client.close()

    @pytest.mark.asyncio
    async def test_async_context_manager(self, connector, fast_options) -> None:
        async with LivePriceWebSocketClient(fast_options, connector=connector) as ws_client:
            await ws_client.connect(URL)

        assert connector.current.closed is True
        assert ws_client.get_close_reason() == CloseReason.NORMAL_CLOSURE
