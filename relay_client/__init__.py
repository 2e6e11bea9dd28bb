"""
Relay client.

Receives webhooks sent to a relay channel (e.g. smee.io) over a
Server-Sent Events stream and hands each one to application callbacks.

Usage:
    # As a command line tool
    python -m relay_client.main --source https://smee.io/abc123 --target http://localhost:3000/hook

    # Programmatically
    from relay_client import RelayClient

    client = RelayClient("https://smee.io/abc123")
    client.subscribe("message", lambda msg: print(msg.headers, msg.body))
    client.start()
"""

# Only import modules without external dependencies
from relay_client.__version__ import __version__
from relay_client.config import ClientConfig, DEFAULT_RELAY_URL
from relay_client.dispatcher import Dispatcher, EventKind
from relay_client.exceptions import (
    DecodeError,
    ProvisioningError,
    RelayClientError,
    StreamStatusError,
    TransportError,
)
from relay_client.message import ForwardedMessage, decode_frame


# Lazy imports for components with external dependencies
def __getattr__(name):
    """Lazy import for components that require aiohttp."""
    if name == "RelayClient":
        from relay_client.client import RelayClient

        return RelayClient
    elif name == "provision_channel":
        from relay_client.channel import provision_channel

        return provision_channel
    elif name in ("Transport", "EventStreamTransport", "ReadyState", "StreamEvent"):
        from relay_client import transport

        return getattr(transport, name)
    elif name == "WebhookForwarder":
        from relay_client.forwarder import WebhookForwarder

        return WebhookForwarder
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "__version__",
    "ClientConfig",
    "DEFAULT_RELAY_URL",
    "Dispatcher",
    "EventKind",
    "ForwardedMessage",
    "decode_frame",
    "RelayClientError",
    "TransportError",
    "StreamStatusError",
    "DecodeError",
    "ProvisioningError",
    "RelayClient",
    "provision_channel",
    "Transport",
    "EventStreamTransport",
    "ReadyState",
    "StreamEvent",
    "WebhookForwarder",
]
