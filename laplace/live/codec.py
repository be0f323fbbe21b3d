"""
Feed message codec.

Translates raw WebSocket text frames into either a FeedUpdate carrying a
normalized tick or a ControlSignal, and encodes outbound subscription
commands.

Inbound frame format:
{
    "type": "data",
    "feed": "live_price_tr",
    "message": { ... feed-specific payload ... }
}
{"type": "heartbeat"}
{"type": "error", "message": "..."}
{"type": "warning", "message": "..."}
"""

from __future__ import annotations

from typing import Any, Iterable, Literal, Union

import orjson

from laplace.live.errors import MessageParseError
from laplace.live.types import (
    BistTick,
    ControlSignal,
    Feed,
    FeedUpdate,
    MessageType,
    Tick,
    UsTick,
)

Command = Literal["subscribe", "unsubscribe"]

CONTROL_TYPES: dict[str, MessageType] = {
    "heartbeat": MessageType.HEARTBEAT,
    "error": MessageType.ERROR,
    "warning": MessageType.WARNING,
}


def _safe_float(value: Any, field_name: str) -> float:
    """Safely convert a value to float."""
    try:
        if isinstance(value, float):
            return value
        return float(value)
    except (ValueError, TypeError) as e:
        raise MessageParseError(
            f"Invalid float value for {field_name}: {value}",
            expected_type="float",
        ) from e


def _safe_int(value: Any, field_name: str) -> int:
    """Safely convert a value to int."""
    try:
        return int(value)
    except (ValueError, TypeError) as e:
        raise MessageParseError(
            f"Invalid integer value for {field_name}: {value}",
            expected_type="int",
        ) from e


def _optional(value: Any, convert: Any, field_name: str) -> Any:
    if value is None:
        return None
    return convert(value, field_name)


def _optional_str(value: Any) -> Union[str, None]:
    return None if value is None else str(value)


def _parse_bist(payload: dict[str, Any]) -> BistTick:
    """
    BIST payload:
    {
        "_id": "61dd0d6f0ec2114146342fd0",
        "symbol": "AKBNK",
        "cl": 51.25,     // Close
        "c": 1.48,       // Percent change
        "d": 1719312000000,
        "_i": "64"
    }
    """
    symbol = payload.get("symbol")
    if not symbol:
        raise MessageParseError("BIST tick is missing symbol", expected_type="bist")
    return BistTick(
        symbol=str(symbol),
        close_price=_safe_float(payload.get("cl"), "cl"),
        percent_change=_optional(payload.get("c"), _safe_float, "c"),
        timestamp=_optional(payload.get("d"), _safe_int, "d"),
        tip_id=_optional_str(payload.get("_i")),
        id=_optional_str(payload.get("_id")),
    )


def _parse_us(payload: dict[str, Any]) -> UsTick:
    """US payload: {"s": "AAPL", "p": 189.3, "t": 1719312000000}"""
    symbol = payload.get("s")
    if not symbol:
        raise MessageParseError("US tick is missing symbol", expected_type="us")
    return UsTick(
        symbol=str(symbol),
        close_price=_safe_float(payload.get("p"), "p"),
        timestamp=_optional(payload.get("t"), _safe_int, "t"),
    )


def parse_tick(feed: Feed, payload: dict[str, Any]) -> Tick:
    """Build the tick variant dictated by the feed."""
    if feed.is_bist:
        return _parse_bist(payload)
    return _parse_us(payload)


def decode_frame(raw: Union[str, bytes]) -> Union[FeedUpdate, ControlSignal]:
    """
    Decode one inbound frame.

    Raises:
        MessageParseError: invalid JSON, missing discriminator or a
            malformed data payload
    """
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise MessageParseError(f"Invalid JSON frame: {e}", raw_data=str(raw)) from e

    if not isinstance(data, dict):
        raise MessageParseError("Frame is not a JSON object", raw_data=str(raw))

    msg_type = data.get("type")
    if not msg_type or not isinstance(msg_type, str):
        raise MessageParseError("Frame has no type discriminator", raw_data=str(raw))

    if msg_type in CONTROL_TYPES:
        text = data.get("message")
        return ControlSignal(
            message_type=CONTROL_TYPES[msg_type],
            text=None if text is None else str(text),
            raw_type=msg_type,
        )

    if msg_type != MessageType.DATA.value:
        return ControlSignal(message_type=MessageType.UNKNOWN, raw_type=str(msg_type))

    payload = data.get("message")
    if not payload or not isinstance(payload, dict):
        raise MessageParseError(
            "Price update message is empty",
            raw_data=str(raw),
            expected_type="data",
        )

    try:
        feed = Feed(data.get("feed"))
    except ValueError as e:
        raise MessageParseError(
            f"Unknown feed: {data.get('feed')}",
            raw_data=str(raw),
            expected_type="data",
        ) from e

    return FeedUpdate(feed=feed, tick=parse_tick(feed, payload))


def encode_command(action: Command, symbols: Iterable[str], feed: Feed) -> str:
    """Encode an outbound subscribe/unsubscribe frame."""
    frame = {"type": action, "symbols": list(symbols), "feed": feed.value}
    return orjson.dumps(frame).decode()
