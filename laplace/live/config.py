"""
Configuration types for the live price module.

Provides immutable, validated options for the streaming session.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from laplace.live.errors import ConfigurationError


@dataclass(frozen=True)
class WebSocketOptions:
    """Reconnect policy and transport options for a streaming session."""

    # Reconnection
    reconnect_attempts: int = 5
    reconnect_delay_s: float = 5.0
    max_reconnect_delay_s: float = 30.0

    # aiohttp client-side ping interval, disabled when None
    heartbeat_s: Optional[float] = None

    def __post_init__(self) -> None:
        if self.reconnect_attempts < 0:
            raise ConfigurationError(
                "reconnect_attempts must be non-negative",
                field="reconnect_attempts",
                value=self.reconnect_attempts,
            )
        if self.reconnect_delay_s < 0:
            raise ConfigurationError(
                "reconnect_delay_s must be non-negative",
                field="reconnect_delay_s",
                value=self.reconnect_delay_s,
            )
        if self.max_reconnect_delay_s < self.reconnect_delay_s:
            raise ConfigurationError(
                "max_reconnect_delay_s must not be below reconnect_delay_s",
                field="max_reconnect_delay_s",
                value=self.max_reconnect_delay_s,
            )
        if self.heartbeat_s is not None and self.heartbeat_s <= 0:
            raise ConfigurationError(
                "heartbeat_s must be positive",
                field="heartbeat_s",
                value=self.heartbeat_s,
            )

    def backoff_delay(self, attempt: int) -> float:
        """
        Delay before reconnect attempt ``attempt`` (1-based).

        Exponential backoff: base * 2^(attempt-1), capped at the maximum.
        """
        if attempt < 1:
            raise ValueError("attempt must be >= 1")
        delay = self.reconnect_delay_s * (2 ** (attempt - 1))
        return float(min(delay, self.max_reconnect_delay_s))
