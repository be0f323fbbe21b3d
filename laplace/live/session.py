"""
Streaming session for live prices.

Handles the WebSocket lifecycle including:
- Connection establishment shared between concurrent callers
- Exponential backoff reconnection after unexpected closes
- Re-subscription from the current registry state after reconnecting
- Subscribe/unsubscribe frame sending
- Connection-level metrics and health tracking
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, ClassVar, Iterable, Mapping, Optional, Union

import aiohttp

from laplace.live.codec import Command, encode_command
from laplace.live.config import WebSocketOptions
from laplace.live.errors import (
    CloseError,
    ConnectionError,
    MaxReconnectExceededError,
    NotConnectedError,
    NotInitializedError,
    WebSocketError,
    WebSocketErrorType,
    close_reason_for,
)
from laplace.live.types import (
    CloseReason,
    ConnectionHealth,
    ConnectionMetrics,
    ConnectionState,
    Feed,
)

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[aiohttp.ClientWebSocketResponse]]
MessageCallback = Callable[[str], None]
SnapshotProvider = Callable[[], Mapping[Feed, frozenset[str]]]


@dataclass(frozen=True)
class Idle:
    state: ClassVar[ConnectionState] = ConnectionState.IDLE


@dataclass(frozen=True)
class Connecting:
    """Handshake in flight; late callers await ``task`` instead of starting another."""

    state: ClassVar[ConnectionState] = ConnectionState.CONNECTING
    task: asyncio.Task[None]


@dataclass(frozen=True)
class Open:
    state: ClassVar[ConnectionState] = ConnectionState.OPEN
    ws: aiohttp.ClientWebSocketResponse


@dataclass(frozen=True)
class Reconnecting:
    state: ClassVar[ConnectionState] = ConnectionState.RECONNECTING
    attempt: int
    timer: asyncio.Task[None]


@dataclass(frozen=True)
class Closing:
    state: ClassVar[ConnectionState] = ConnectionState.CLOSING


@dataclass(frozen=True)
class Closed:
    state: ClassVar[ConnectionState] = ConnectionState.CLOSED
    reason: CloseReason


Phase = Union[Idle, Connecting, Open, Reconnecting, Closing, Closed]


class StreamingSession:
    """
    Owns a single WebSocket connection and keeps it alive.

    Responsibilities:
    - WebSocket connection lifecycle (connect, reconnect, close)
    - Exponential backoff for reconnection, capped and bounded
    - Replaying the aggregate subscription set after a reconnect
    - Connection-level metrics tracking

    The session does NOT parse messages - it delivers raw text frames to
    the registered callback. It never mutates subscription state either;
    it only reads the snapshot returned by ``snapshot`` when it needs to
    resubscribe.

    A failed first handshake is reported to the caller and not retried.
    Only an unexpected close of an open connection starts reconnecting.

    Usage:
        session = StreamingSession(
            options=WebSocketOptions(),
            on_message=handle_text,
            snapshot=registry.aggregate_by_feed,
        )
        await session.connect(url)
        await session.add_symbols(["AKBNK"], Feed.LIVE_BIST)
        # ... later ...
        await session.close()
    """

    def __init__(
        self,
        options: WebSocketOptions,
        on_message: MessageCallback,
        snapshot: SnapshotProvider,
        connector: Optional[Connector] = None,
        name: str = "live_price",
    ) -> None:
        """
        Initialize the session.

        Args:
            options: Reconnect policy and transport options
            on_message: Callback for every inbound text frame
            snapshot: Returns the current aggregate subscription set per feed
            connector: Opens a WebSocket for a URL; defaults to aiohttp
            name: Name for logging purposes
        """
        self._options = options
        self._on_message = on_message
        self._snapshot = snapshot
        self._connector = connector or self._aiohttp_connect
        self._name = name

        # State
        self._phase: Phase = Idle()
        self._url: Optional[str] = None
        self._http: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._receive_task: Optional[asyncio.Task[None]] = None
        self._reconnect_task: Optional[asyncio.Task[None]] = None

        # Reconnection state
        self._reconnect_attempt = 0
        self._close_reason: Optional[CloseReason] = None
        self._is_closed = False

        # Metrics
        self._metrics = ConnectionMetrics()
        self._connected_at: Optional[datetime] = None
        self._last_message_at: Optional[datetime] = None
        self._last_error: Optional[str] = None

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._phase.state

    @property
    def close_reason(self) -> Optional[CloseReason]:
        return self._close_reason

    @property
    def reconnect_attempt(self) -> int:
        return self._reconnect_attempt

    @property
    def url(self) -> Optional[str]:
        return self._url

    @property
    def metrics(self) -> ConnectionMetrics:
        return self._metrics

    def is_connection_closed(self) -> bool:
        """True once the socket has closed and no reconnect has succeeded since."""
        return self._is_closed

    def _set_phase(self, phase: Phase) -> None:
        old_state = self._phase.state
        self._phase = phase
        if old_state != phase.state:
            logger.debug(f"[{self._name}] State: {old_state.value} -> {phase.state.value}")

    # --- Connecting ---

    async def connect(self, url: str) -> None:
        """
        Open the connection, or join the handshake already in flight.

        Raises:
            ConnectionError: If the handshake fails
        """
        phase = self._phase
        if isinstance(phase, Open) and not phase.ws.closed:
            if url != self._url:
                logger.warning(f"[{self._name}] Already connected to {self._url}, ignoring {url}")
            return
        if isinstance(phase, Connecting):
            await asyncio.shield(phase.task)
            return
        if isinstance(phase, Open):
            # Dropped socket whose receive loop has not reported yet
            self._ws = None
            self._is_closed = True
        if isinstance(phase, Reconnecting):
            self._cancel_reconnect()

        logger.info(f"[{self._name}] Connecting to WebSocket...")
        self._url = url
        self._close_reason = None
        await self._start_handshake(url, initial=True)

    async def _start_handshake(self, url: str, *, initial: bool) -> None:
        task = asyncio.create_task(
            self._establish_connection(url, initial=initial),
            name=f"{self._name}_connect",
        )
        task.add_done_callback(_consume_exception)
        self._set_phase(Connecting(task))
        await asyncio.shield(task)

    async def _establish_connection(self, url: str, *, initial: bool) -> None:
        try:
            ws = await self._connector(url)
        except Exception as e:
            self._metrics.errors += 1
            self._last_error = str(e)
            error = ConnectionError(
                f"WebSocket connection error: {e}",
                url=url,
                reconnect_attempt=self._reconnect_attempt,
                component=self._name,
            )
            if initial:
                self._close_reason = close_reason_for(error)
                self._is_closed = True
                self._set_phase(Closed(self._close_reason))
            raise error from e

        self._ws = ws
        if self._close_reason == CloseReason.NORMAL_CLOSURE:
            # close() was called during the handshake and will close this socket
            raise ConnectionError(
                "Session closed during handshake", url=url, component=self._name
            )

        self._reconnect_attempt = 0
        self._is_closed = False
        self._connected_at = datetime.now(timezone.utc)
        self._set_phase(Open(ws))
        self._receive_task = asyncio.create_task(
            self._receive_loop(ws), name=f"{self._name}_receive"
        )
        logger.info(f"[{self._name}] WebSocket connected")

    async def _aiohttp_connect(self, url: str) -> aiohttp.ClientWebSocketResponse:
        # No handshake timeout beyond aiohttp's defaults
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
        return await self._http.ws_connect(url, heartbeat=self._options.heartbeat_s)

    # --- Receiving ---

    async def _receive_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        """Main loop for receiving WebSocket messages."""
        try:
            async for msg in ws:
                self._last_message_at = datetime.now(timezone.utc)
                self._metrics.messages_received += 1

                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._metrics.bytes_received += len(msg.data)
                    try:
                        self._on_message(msg.data)
                    except Exception as e:
                        logger.error(f"[{self._name}] Message handling error: {e}")
                        self._metrics.errors += 1

                elif msg.type == aiohttp.WSMsgType.BINARY:
                    logger.debug(f"[{self._name}] Received binary message (ignored)")

                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"[{self._name}] WebSocket error: {ws.exception()}")
                    self._metrics.errors += 1
                    break

        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Receive loop cancelled")
            raise
        except Exception as e:
            logger.error(f"[{self._name}] Receive loop error: {e}")
            self._last_error = str(e)
            self._metrics.errors += 1

        await self._handle_disconnect(ws)

    async def _handle_disconnect(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        phase = self._phase
        if not isinstance(phase, Open) or phase.ws is not ws:
            return
        self._is_closed = True
        logger.info(f"[{self._name}] WebSocket closed")

        if self._close_reason == CloseReason.NORMAL_CLOSURE:
            return

        self._metrics.reconnections += 1
        await self._schedule_reconnect()

    # --- Reconnecting ---

    async def _schedule_reconnect(self) -> None:
        """Arm the next reconnect timer, or give up once the ceiling is reached."""
        max_attempts = self._options.reconnect_attempts
        if self._reconnect_attempt >= max_attempts:
            error = MaxReconnectExceededError(
                f"Maximum reconnection attempts ({max_attempts}) reached",
                attempts=self._reconnect_attempt,
                component=self._name,
            )
            self._close_reason = close_reason_for(error)
            self._last_error = str(error)
            self._set_phase(Closed(self._close_reason))
            logger.error(f"[{self._name}] Failed to reconnect: {error}")
            await self._close_http()
            return

        self._reconnect_attempt += 1
        delay = self._options.backoff_delay(self._reconnect_attempt)
        logger.info(
            f"[{self._name}] Attempting to reconnect "
            f"({self._reconnect_attempt}/{max_attempts}) in {delay:.2f}s..."
        )
        timer = asyncio.create_task(
            self._reconnect_after(delay), name=f"{self._name}_reconnect"
        )
        self._reconnect_task = timer
        self._set_phase(Reconnecting(attempt=self._reconnect_attempt, timer=timer))

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)

        url = self._url
        if self._close_reason == CloseReason.NORMAL_CLOSURE or url is None:
            return

        attempt = self._reconnect_attempt
        try:
            await self._start_handshake(url, initial=False)
        except ConnectionError as e:
            if self._close_reason == CloseReason.NORMAL_CLOSURE:
                return
            logger.warning(f"[{self._name}] Reconnect attempt {attempt} failed: {e}")
            await self._schedule_reconnect()
            return

        await self._resubscribe()

    async def _resubscribe(self) -> None:
        """Send subscribe frames for whatever the registry holds right now."""
        for feed, symbols in self._snapshot().items():
            if not symbols:
                continue
            try:
                await self.add_symbols(sorted(symbols), feed)
            except WebSocketError as e:
                logger.error(f"[{self._name}] Resubscribe failed for {feed.value}: {e}")

    def _cancel_reconnect(self) -> None:
        timer = self._reconnect_task
        self._reconnect_task = None
        if timer is not None and not timer.done() and timer is not asyncio.current_task():
            timer.cancel()

    # --- Sending ---

    async def add_symbols(self, symbols: Iterable[str], feed: Feed) -> None:
        """Send a subscribe frame for ``symbols`` on ``feed``."""
        await self._send("subscribe", symbols, feed)

    async def remove_symbols(self, symbols: Iterable[str], feed: Feed) -> None:
        """Send an unsubscribe frame for ``symbols`` on ``feed``."""
        await self._send("unsubscribe", symbols, feed)

    async def _send(self, action: Command, symbols: Iterable[str], feed: Feed) -> None:
        """
        Raises:
            NotInitializedError: No socket has been created
            NotConnectedError: The socket is not open
            ConnectionError: The in-flight handshake failed
        """
        symbols = list(symbols)
        if not symbols:
            return

        phase = self._phase
        if isinstance(phase, Connecting):
            await asyncio.shield(phase.task)

        ws = self._ws
        if ws is None:
            raise NotInitializedError("WebSocket is not initialized", component=self._name)
        if not isinstance(self._phase, Open) or ws.closed:
            raise NotConnectedError("WebSocket is not connected", component=self._name)

        try:
            await ws.send_str(encode_command(action, symbols, feed))
        except Exception as e:
            self._metrics.errors += 1
            raise WebSocketError(
                f"Failed to send {action}: {e}",
                code=WebSocketErrorType.WEBSOCKET_ERROR,
                component=self._name,
            ) from e
        logger.debug(f"[{self._name}] Sent {action} {symbols} on {feed.value}")

    # --- Closing ---

    async def close(self) -> None:
        """
        Close the connection and stop reconnecting. Safe to call repeatedly.

        Raises:
            CloseError: If the closing handshake fails; the session is
                reset regardless
        """
        logger.info(f"[{self._name}] Closing connection")
        self._close_reason = CloseReason.NORMAL_CLOSURE
        self._cancel_reconnect()

        phase = self._phase
        self._set_phase(Closing())
        try:
            if isinstance(phase, Connecting):
                await asyncio.wait([phase.task])

            ws = self._ws
            if ws is not None and not ws.closed:
                await ws.close()

            receive_task = self._receive_task
            if receive_task is not None and not receive_task.done():
                await asyncio.wait([receive_task])

        except Exception as e:
            logger.error(f"[{self._name}] Unexpected error during close: {e}")
            raise CloseError(
                f"Unexpected error during close: {e}", component=self._name
            ) from e

        finally:
            receive_task = self._receive_task
            if receive_task is not None and not receive_task.done():
                receive_task.cancel()
            self._receive_task = None
            self._ws = None
            self._is_closed = True
            self._set_phase(Closed(CloseReason.NORMAL_CLOSURE))
            await self._close_http()
            logger.info(f"[{self._name}] Connection closed")

    async def _close_http(self) -> None:
        if self._http is not None and not self._http.closed:
            try:
                await self._http.close()
            except Exception as e:
                logger.warning(f"[{self._name}] HTTP session close failed: {e}")
        self._http = None

    def get_health(self) -> ConnectionHealth:
        """Get current connection health snapshot."""
        return ConnectionHealth(
            state=self.state,
            url=self._url,
            connected_since=self._connected_at,
            last_message_at=self._last_message_at,
            reconnect_count=self._metrics.reconnections,
            message_count=self._metrics.messages_received,
            error_count=self._metrics.errors,
            last_error=self._last_error,
            close_reason=self._close_reason,
        )


def _consume_exception(task: asyncio.Task[None]) -> None:
    # Handshake failures are reported to awaiting callers; mark them retrieved
    if not task.cancelled():
        task.exception()
