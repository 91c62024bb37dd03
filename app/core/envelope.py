"""Decoding of message and request envelopes.

Bodies reach the service in several shapes: an already parsed mapping, JSON
text, raw bytes, a Node-style serialized buffer (``{"type": "Buffer",
"data": [...]}``) and notification envelopes that nest the real payload as a
JSON string under ``Message``. Each strategy below either returns a mapping
or ``None`` to fall through to the next one.
"""

import json
from collections.abc import Callable, Mapping
from typing import Any

from app.core.exceptions import MessageParseError

DecodeStrategy = Callable[[Any], dict[str, Any] | None]


def _as_mapping(value: Any) -> dict[str, Any] | None:
    return dict(value) if isinstance(value, Mapping) else None


def _from_buffer_object(value: Any) -> dict[str, Any] | None:
    if not isinstance(value, Mapping) or value.get("type") != "Buffer":
        return None
    data = value.get("data")
    if not isinstance(data, list):
        return None
    try:
        return _from_bytes(bytes(data))
    except (TypeError, ValueError):
        return None


def _from_mapping(value: Any) -> dict[str, Any] | None:
    return _as_mapping(value)


def _from_text(value: Any) -> dict[str, Any] | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return None
    decoded = _from_buffer_object(parsed)
    return decoded if decoded is not None else _as_mapping(parsed)


def _from_bytes(value: Any) -> dict[str, Any] | None:
    if not isinstance(value, bytes | bytearray):
        return None
    try:
        return _from_text(bytes(value).decode("utf-8"))
    except UnicodeDecodeError:
        return None


# Priority order matters: a serialized buffer is also a mapping.
DECODE_STRATEGIES: tuple[DecodeStrategy, ...] = (
    _from_buffer_object,
    _from_mapping,
    _from_text,
    _from_bytes,
)


def decode_payload(raw: Any) -> dict[str, Any]:
    """
    Decode a raw body into a JSON object.

    Args:
        raw: Body as received (mapping, str, bytes or serialized buffer)

    Returns:
        Decoded JSON object

    Raises:
        MessageParseError: If no strategy yields a JSON object
    """
    for strategy in DECODE_STRATEGIES:
        payload = strategy(raw)
        if payload is not None:
            return payload

    raise MessageParseError(f"Unable to decode message body of type {type(raw).__name__}")


def unwrap_envelope(payload: dict[str, Any], max_depth: int = 2) -> dict[str, Any]:
    """
    Peel nested ``Message`` envelopes off a decoded payload.

    Args:
        payload: Decoded JSON object
        max_depth: Maximum number of ``Message`` levels to unwrap

    Returns:
        The innermost payload reached within ``max_depth`` levels

    Raises:
        MessageParseError: If a ``Message`` field cannot be decoded
    """
    for _ in range(max_depth):
        if "Message" not in payload:
            break
        payload = decode_payload(payload["Message"])
    return payload


def extract_appointment_id(payload: Mapping[str, Any]) -> str | None:
    """Find the appointment id in a completion event (detail.id, detail.detail.id, id)."""
    detail = payload.get("detail")
    if isinstance(detail, Mapping):
        if detail.get("id"):
            return str(detail["id"])
        nested = detail.get("detail")
        if isinstance(nested, Mapping) and nested.get("id"):
            return str(nested["id"])
    if payload.get("id"):
        return str(payload["id"])
    return None
