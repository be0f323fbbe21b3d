"""
Custom exceptions for the live price module.

Exception hierarchy:
- WebSocketError (base, carries a WebSocketErrorType code)
  - NotInitializedError: no socket has been created yet
  - NotConnectedError: socket exists but is not open
  - ConnectionError: handshake or transport failure
  - CloseError: closing handshake failed
  - MaxReconnectExceededError: reconnect attempts exhausted
  - MessageParseError: invalid/malformed inbound frame
  - ConfigurationError: invalid options
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from laplace.live.types import CloseReason


class WebSocketErrorType(str, Enum):
    """Error codes attached to every WebSocketError."""

    MAX_RECONNECT_EXCEEDED = "MAX_RECONNECT_EXCEEDED"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    CLOSE_ERROR = "CLOSE_ERROR"
    WEBSOCKET_NOT_INITIALIZED = "WEBSOCKET_NOT_INITIALIZED"
    MESSAGE_PARSE_ERROR = "MESSAGE_PARSE_ERROR"
    WEBSOCKET_NOT_CONNECTED = "WEBSOCKET_NOT_CONNECTED"
    WEBSOCKET_ERROR = "WEBSOCKET_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class WebSocketError(Exception):
    """Base exception for all live price errors."""

    default_code = WebSocketErrorType.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: Optional[WebSocketErrorType] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.code = code or self.default_code
        self.component = component
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.component:
            parts.append(f"[component={self.component}]")
        if self.details:
            parts.append(f"[details={self.details}]")
        return " ".join(parts)


class NotInitializedError(WebSocketError):
    """Raised when a send is attempted before any socket exists."""

    default_code = WebSocketErrorType.WEBSOCKET_NOT_INITIALIZED


class NotConnectedError(WebSocketError):
    """Raised when a send is attempted on a socket that is not open."""

    default_code = WebSocketErrorType.WEBSOCKET_NOT_CONNECTED


class ConnectionError(WebSocketError):
    """Raised when the WebSocket handshake fails."""

    default_code = WebSocketErrorType.CONNECTION_ERROR

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        reconnect_attempt: int = 0,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.url = url
        self.reconnect_attempt = reconnect_attempt
        details = details or {}
        if url:
            details["url"] = url
        details["reconnect_attempt"] = reconnect_attempt
        super().__init__(message, component=component, details=details)


class CloseError(WebSocketError):
    """Raised when closing the socket fails."""

    default_code = WebSocketErrorType.CLOSE_ERROR


class MaxReconnectExceededError(WebSocketError):
    """Raised (and logged) when the reconnect ceiling is reached."""

    default_code = WebSocketErrorType.MAX_RECONNECT_EXCEEDED

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        component: Optional[str] = None,
    ) -> None:
        self.attempts = attempts
        super().__init__(message, component=component, details={"attempts": attempts})


class MessageParseError(WebSocketError):
    """Raised when an inbound frame cannot be parsed."""

    default_code = WebSocketErrorType.MESSAGE_PARSE_ERROR

    def __init__(
        self,
        message: str,
        *,
        raw_data: Optional[str] = None,
        expected_type: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.raw_data = raw_data
        self.expected_type = expected_type
        details = details or {}
        if expected_type:
            details["expected_type"] = expected_type
        # Don't include raw_data in details to avoid log spam
        super().__init__(message, component=component, details=details)


class ConfigurationError(WebSocketError):
    """Raised when options are invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.field = field
        self.value = value
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, component=component, details=details)


def close_reason_for(error: BaseException) -> CloseReason:
    """Map a failure to the close reason reported by the session."""
    if not isinstance(error, WebSocketError):
        return CloseReason.UNKNOWN
    if error.code == WebSocketErrorType.MAX_RECONNECT_EXCEEDED:
        return CloseReason.MAX_RECONNECT_EXCEEDED
    if error.code in (
        WebSocketErrorType.CONNECTION_ERROR,
        WebSocketErrorType.WEBSOCKET_NOT_INITIALIZED,
    ):
        return CloseReason.CONNECTION_ERROR
    return CloseReason.UNKNOWN
