"""
Laplace client library.

The live price engine lives in ``laplace.live``; ``laplace.client`` holds
the plain HTTP client and the WebSocket URL resolver.
"""

from laplace.client.errors import LaplaceError, LaplaceHTTPError
from laplace.client.live_price_url import LivePriceClient, Region
from laplace.config import LaplaceConfig, load_config
from laplace.live import (
    BistTick,
    CloseReason,
    Feed,
    LivePriceWebSocketClient,
    UsTick,
    WebSocketError,
    WebSocketOptions,
)

__all__ = [
    "LaplaceConfig",
    "load_config",
    "LaplaceError",
    "LaplaceHTTPError",
    "LivePriceClient",
    "Region",
    "LivePriceWebSocketClient",
    "WebSocketOptions",
    "WebSocketError",
    "Feed",
    "BistTick",
    "UsTick",
    "CloseReason",
]
