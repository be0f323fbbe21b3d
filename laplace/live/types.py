"""
Shared types, enums, and data structures for the live price module.

This module contains types that are used across multiple components
of the live price system.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Union


class Feed(str, Enum):
    """Logical price channels offered by the streaming endpoint."""

    LIVE_BIST = "live_price_tr"
    DELAYED_BIST = "delayed_price_tr"
    LIVE_US = "live_price_us"
    DELAYED_US = "delayed_price_us"

    @property
    def is_bist(self) -> bool:
        """Whether ticks on this feed use the BIST payload shape."""
        return self in (Feed.LIVE_BIST, Feed.DELAYED_BIST)


class ConnectionState(str, Enum):
    """State machine for the streaming session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSING = "closing"
    CLOSED = "closed"


class CloseReason(str, Enum):
    """Why a session ended up closed."""

    NORMAL_CLOSURE = "NORMAL_CLOSURE"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    MAX_RECONNECT_EXCEEDED = "MAX_RECONNECT_EXCEEDED"
    UNKNOWN = "UNKNOWN"


class MessageType(str, Enum):
    """Inbound frame discriminators."""

    DATA = "data"
    HEARTBEAT = "heartbeat"
    ERROR = "error"
    WARNING = "warning"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class BistTick:
    """Price update for a Borsa Istanbul instrument."""

    symbol: str
    close_price: float
    percent_change: Optional[float] = None
    timestamp: Optional[int] = None  # Unix ms
    tip_id: Optional[str] = None
    id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class UsTick:
    """Price update for a US instrument."""

    symbol: str
    close_price: float
    timestamp: Optional[int] = None  # Unix ms


Tick = Union[BistTick, UsTick]
TickHandler = Callable[[Tick], None]


@dataclass(frozen=True, slots=True)
class FeedUpdate:
    """Decoded data frame."""

    feed: Feed
    tick: Tick


@dataclass(frozen=True, slots=True)
class ControlSignal:
    """Decoded non-data frame (heartbeat, error, warning, unknown)."""

    message_type: MessageType
    text: Optional[str] = None
    raw_type: Optional[str] = None


@dataclass
class ConnectionMetrics:
    """Counters for a streaming session."""

    messages_received: int = 0
    bytes_received: int = 0
    reconnections: int = 0
    errors: int = 0


@dataclass
class ConnectionHealth:
    """Health snapshot for the streaming session."""

    state: ConnectionState
    url: Optional[str]
    connected_since: Optional[datetime] = None
    last_message_at: Optional[datetime] = None
    reconnect_count: int = 0
    message_count: int = 0
    error_count: int = 0
    last_error: Optional[str] = None
    close_reason: Optional[CloseReason] = None

    @property
    def is_healthy(self) -> bool:
        """Check if connection is in a healthy state."""
        return self.state == ConnectionState.OPEN

    @property
    def seconds_since_message(self) -> Optional[float]:
        """Seconds since last message, or None if no messages yet."""
        if self.last_message_at is None:
            return None
        now = datetime.now(timezone.utc)
        return (now - self.last_message_at).total_seconds()
