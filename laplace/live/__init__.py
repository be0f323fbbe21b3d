"""
Live Price Module.

This module provides real-time price subscriptions over the provider's
WebSocket endpoint, multiplexing many handlers over a single connection
and reconnecting with backoff after unexpected disconnects.

Components:
- LivePriceWebSocketClient: Public subscription API
- StreamingSession: WebSocket lifecycle, reconnection, resubscription
- SubscriptionRegistry: Handler bookkeeping and subscribe/unsubscribe deltas
- codec: Frame decoding into BistTick / UsTick and control signals

Usage:
    from laplace.live import Feed, LivePriceWebSocketClient

    client = LivePriceWebSocketClient()
    await client.connect(url)
    unsubscribe = client.subscribe(["AKBNK"], Feed.LIVE_BIST, on_tick)
"""

from laplace.live.client import LivePriceWebSocketClient
from laplace.live.config import WebSocketOptions
from laplace.live.errors import (
    CloseError,
    ConfigurationError,
    ConnectionError,
    MaxReconnectExceededError,
    MessageParseError,
    NotConnectedError,
    NotInitializedError,
    WebSocketError,
    WebSocketErrorType,
)
from laplace.live.registry import SubscriptionRegistry
from laplace.live.session import StreamingSession
from laplace.live.types import (
    BistTick,
    CloseReason,
    ConnectionHealth,
    ConnectionState,
    Feed,
    Tick,
    UsTick,
)

__all__ = [
    # Main entry point
    "LivePriceWebSocketClient",
    "WebSocketOptions",
    "StreamingSession",
    "SubscriptionRegistry",
    # Types
    "Feed",
    "BistTick",
    "UsTick",
    "Tick",
    "ConnectionState",
    "CloseReason",
    "ConnectionHealth",
    # Errors
    "WebSocketError",
    "WebSocketErrorType",
    "NotInitializedError",
    "NotConnectedError",
    "ConnectionError",
    "CloseError",
    "MaxReconnectExceededError",
    "MessageParseError",
    "ConfigurationError",
]
