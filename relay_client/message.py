"""
Forwarded webhook messages.

Each data frame received from a relay channel is a JSON object of the form::

    {
        "body": {...},            # the original request body
        "query": {"key": "value"},
        "timestamp": 1700000000000,
        "x-github-event": "push", # any other string field is a header
        ...
    }

``decode_frame`` turns that text into a ``ForwardedMessage``.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from relay_client.exceptions import DecodeError

RESERVED_KEYS = ("body", "query", "timestamp")

_MISSING = object()


@dataclass(frozen=True)
class ForwardedMessage:
    """A webhook request relayed through a channel."""

    body: Any = field(default_factory=dict)
    query: Dict[str, str] = field(default_factory=dict)
    timestamp: int = 0
    headers: Dict[str, str] = field(default_factory=dict)
    # JSON text of ``body``, used for signature verification
    raw_body: str = ""

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default


def serialize_body(body: Any) -> str:
    """Serialize a body the way the relay writes it: compact, non-ASCII kept."""
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False)


def current_millis() -> int:
    return int(time.time() * 1000)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Invalid JSON constant {name}")


def decode_frame(data: str, now: Optional[int] = None) -> ForwardedMessage:
    """
    Decode one frame's text payload.

    Args:
        data: Frame text (a JSON object)
        now: Receipt time in milliseconds, used when the frame has no timestamp

    Returns:
        ForwardedMessage built from the frame

    Raises:
        DecodeError: If the text is not a JSON object
    """
    try:
        parsed = json.loads(data, parse_constant=_reject_constant)
    except (ValueError, TypeError) as e:
        raise DecodeError(f"Malformed frame: {e}") from e

    if not isinstance(parsed, dict):
        raise DecodeError(
            f"Malformed frame: expected a JSON object, got {type(parsed).__name__}"
        )

    body = parsed.pop("body", _MISSING)
    query = parsed.pop("query", None)
    timestamp = parsed.pop("timestamp", None)

    # Non-string fields are not headers; they are dropped rather than coerced.
    headers = {key: value for key, value in parsed.items() if isinstance(value, str)}

    if body is _MISSING:
        body = {}
        raw_body = ""
    else:
        raw_body = serialize_body(body)

    if timestamp is None:
        timestamp = now if now is not None else current_millis()

    return ForwardedMessage(
        body=body,
        query=query if query is not None else {},
        timestamp=timestamp,
        headers=headers,
        raw_body=raw_body,
    )
