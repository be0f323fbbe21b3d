"""
In-memory WebSocket doubles for the live price tests.

FakeConnector stands in for aiohttp's ws_connect: every call either fails
or hands out a FakeWebSocket whose inbound frames are pushed by the test.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import aiohttp
import orjson
import pytest

from laplace.live.config import WebSocketOptions

_CLOSING_TYPES = (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED)


class FakeWebSocket:
    """Mimics the parts of aiohttp.ClientWebSocketResponse the session uses."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.close_calls = 0
        self.fail_close = False
        self._inbox: asyncio.Queue[aiohttp.WSMessage] = asyncio.Queue()

    def push_text(self, text: str) -> None:
        self._inbox.put_nowait(aiohttp.WSMessage(aiohttp.WSMsgType.TEXT, text, None))

    def push_json(self, frame: dict[str, Any]) -> None:
        self.push_text(orjson.dumps(frame).decode())

    def drop(self) -> None:
        """Server-side close."""
        self.closed = True
        self._inbox.put_nowait(aiohttp.WSMessage(aiohttp.WSMsgType.CLOSED, None, None))

    async def send_str(self, data: str) -> None:
        if self.closed:
            raise ConnectionResetError("socket closed")
        self.sent.append(orjson.loads(data))

    async def close(self) -> bool:
        self.close_calls += 1
        if self.fail_close:
            raise RuntimeError("close failed")
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(aiohttp.WSMessage(aiohttp.WSMsgType.CLOSED, None, None))
        return True

    def exception(self) -> Optional[BaseException]:
        return None

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> aiohttp.WSMessage:
        msg = await self._inbox.get()
        if msg.type in _CLOSING_TYPES:
            raise StopAsyncIteration
        return msg


class FakeConnector:
    """Callable connector; set ``fail`` or ``gate`` to control handshakes."""

    def __init__(self) -> None:
        self.sockets: list[FakeWebSocket] = []
        self.urls: list[str] = []
        self.fail = False
        self.gate: Optional[asyncio.Event] = None

    @property
    def calls(self) -> int:
        return len(self.urls)

    @property
    def current(self) -> FakeWebSocket:
        return self.sockets[-1]

    async def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise aiohttp.ClientConnectionError("connection refused")
        ws = FakeWebSocket(url)
        self.sockets.append(ws)
        return ws


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def fast_options() -> WebSocketOptions:
    """Reconnect policy with millisecond delays."""
    return WebSocketOptions(
        reconnect_attempts=5,
        reconnect_delay_s=0.001,
        max_reconnect_delay_s=0.004,
    )


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Poll a predicate until it holds, failing after ``timeout`` seconds."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.001)

    return _wait
