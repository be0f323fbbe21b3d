"""
Live price WebSocket client - public subscription API.

Coordinates the live price components:
- StreamingSession for the WebSocket lifecycle
- SubscriptionRegistry for handler bookkeeping and wire deltas
- Codec for decoding inbound frames before fan-out
"""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType
from typing import Any, Callable, Coroutine, Iterable, Optional, Union

from laplace.live.codec import decode_frame
from laplace.live.config import WebSocketOptions
from laplace.live.errors import MessageParseError, WebSocketError
from laplace.live.registry import SubscriptionRegistry
from laplace.live.session import Connector, StreamingSession
from laplace.live.types import (
    CloseReason,
    ConnectionHealth,
    ConnectionState,
    ControlSignal,
    Feed,
    FeedUpdate,
    MessageType,
    TickHandler,
)

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


class LivePriceWebSocketClient:
    """
    Multiplexed live price subscriptions over one WebSocket.

    Any number of handlers can subscribe to any (symbol, feed) pairs. The
    wire only sees a subscribe frame when a pair gains its first handler
    and an unsubscribe frame when it loses its last one. After an
    unexpected disconnect the session reconnects with backoff and
    resubscribes whatever is registered at that moment.

    Usage:
        url = await LivePriceClient(config).get_websocket_url(user_id, [Feed.LIVE_BIST])
        client = LivePriceWebSocketClient()
        await client.connect(url)

        unsubscribe = client.subscribe(["AKBNK", "THYAO"], Feed.LIVE_BIST, print)
        # ... later ...
        unsubscribe()
        await client.close()
    """

    def __init__(
        self,
        options: Optional[WebSocketOptions] = None,
        *,
        connector: Optional[Connector] = None,
        name: str = "live_price",
    ) -> None:
        """
        Initialize the client.

        Args:
            options: Reconnect policy; defaults to 5 attempts, 5s base, 30s cap
            connector: Opens a WebSocket for a URL; defaults to aiohttp
            name: Name for logging purposes
        """
        self._options = options or WebSocketOptions()
        self._name = name
        self._registry = SubscriptionRegistry()
        self._session = StreamingSession(
            options=self._options,
            on_message=self._handle_message,
            snapshot=self._registry.aggregate_by_feed,
            connector=connector,
            name=name,
        )
        # Strong references to fire-and-forget sends
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> ConnectionState:
        return self._session.state

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def options(self) -> WebSocketOptions:
        return self._options

    async def connect(self, url: str) -> None:
        """
        Connect to a URL issued by the live price endpoint.

        Raises:
            ConnectionError: If the handshake fails (not retried)
        """
        await self._session.connect(url)

    def subscribe(
        self,
        symbols: Iterable[str],
        feed: Feed,
        handler: TickHandler,
    ) -> Unsubscribe:
        """
        Register ``handler`` for ticks of ``symbols`` on ``feed``.

        Returns immediately with the unsubscribe function. The subscribe
        frame for newly covered symbols is sent in the background; send
        failures are logged.
        """
        handle, added = self._registry.add(symbols, feed, handler)
        if added:
            self._spawn(self._session.add_symbols(added.symbols, feed), "subscribe")

        def unsubscribe() -> None:
            removed = self._registry.remove(handle)
            if removed:
                self._spawn(
                    self._session.remove_symbols(removed.symbols, removed.feed),
                    "unsubscribe",
                )

        return unsubscribe

    async def close(self) -> None:
        """
        Close the connection. Subscriptions do not survive a close.

        Raises:
            CloseError: If the closing handshake fails
        """
        try:
            await self._session.close()
        finally:
            self._registry.clear()
            for task in list(self._pending):
                task.cancel()

    def is_connection_closed(self) -> bool:
        return self._session.is_connection_closed()

    def get_close_reason(self) -> Optional[CloseReason]:
        return self._session.close_reason

    def get_health(self) -> ConnectionHealth:
        return self._session.get_health()

    async def __aenter__(self) -> LivePriceWebSocketClient:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.close()

    # --- Internals ---

    def _spawn(self, coro: Coroutine[Any, Any, None], action: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Registry change stands; the next reconnect replays it
            coro.close()
            logger.warning(f"[{self._name}] No running event loop, {action} not sent")
            return
        task = loop.create_task(coro, name=f"{self._name}_{action}")
        self._pending.add(task)
        task.add_done_callback(lambda t: self._on_send_done(t, action))

    def _on_send_done(self, task: asyncio.Task[None], action: str) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        if isinstance(error, WebSocketError):
            logger.error(f"[{self._name}] Failed to {action}: {error}")
        else:
            logger.error(f"[{self._name}] Unexpected error during {action}: {error}")

    def _handle_message(self, raw: Union[str, bytes]) -> None:
        """Decode one frame and fan it out. Never raises."""
        try:
            decoded = decode_frame(raw)
        except MessageParseError as e:
            logger.error(f"[{self._name}] Failed to parse WebSocket message: {e}")
            return

        if isinstance(decoded, ControlSignal):
            self._handle_control(decoded)
            return
        self._dispatch(decoded)

    def _handle_control(self, signal: ControlSignal) -> None:
        if signal.message_type == MessageType.HEARTBEAT:
            logger.debug(f"[{self._name}] Received heartbeat")
        elif signal.message_type == MessageType.WARNING:
            logger.warning(f"[{self._name}] Received warning: {signal.text}")
        elif signal.message_type == MessageType.ERROR:
            logger.error(f"[{self._name}] Received error: {signal.text}")
        else:
            logger.error(f"[{self._name}] Unknown message type: {signal.raw_type}")

    def _dispatch(self, update: FeedUpdate) -> None:
        tick = update.tick
        for handler in self._registry.handlers_for(tick.symbol, update.feed):
            try:
                handler(tick)
            except Exception as e:
                logger.error(
                    f"[{self._name}] Handler error for {tick.symbol}: {e}",
                    exc_info=True,
                )
