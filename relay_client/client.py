"""
Relay client session.

A ``RelayClient`` owns at most one push-stream transport to a relay
channel and republishes what the transport reports as typed events:

    message  ForwardedMessage decoded from a data frame
    open     None, the stream is connected
    ping     None, heartbeat from the relay
    error    TransportError or DecodeError
    close    None, ``stop()`` was called

Usage:
    client = RelayClient("https://smee.io/abc123")
    client.subscribe("message", lambda msg: print(msg.body))
    client.start()   # from inside a running event loop
"""

import logging
from functools import partial
from typing import Any, Callable, Mapping, Optional, Union

from relay_client.channel import provision_channel
from relay_client.config import ClientConfig, DEFAULT_RELAY_URL
from relay_client.dispatcher import Dispatcher, EventKind, Listener
from relay_client.exceptions import DecodeError, TransportError
from relay_client.message import decode_frame
from relay_client.transport import (
    EventStreamTransport,
    ReadyState,
    StreamEvent,
    Transport,
)

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "stream error"

TransportFactory = Callable[[str], Transport]


class RelayClient:
    """Streams forwarded webhooks from one relay channel."""

    def __init__(
        self,
        source: str,
        config: Optional[ClientConfig] = None,
        transport_factory: Optional[TransportFactory] = None,
    ):
        """
        Initialize the client.

        Args:
            source: Channel URL (e.g. ``https://smee.io/abc123``)
            config: Optional configuration for the default transport
            transport_factory: Callable creating a transport for a URL;
                defaults to ``EventStreamTransport``
        """
        self._source = source[:-1] if source.endswith("/") else source
        self._transport: Optional[Transport] = None
        self._dispatcher = Dispatcher()
        # Incremented on every start/stop so stale transport callbacks are ignored
        self._generation = 0
        self._transport_factory = transport_factory or partial(
            EventStreamTransport, config=config
        )

    @property
    def source(self) -> str:
        return self._source

    @property
    def connected(self) -> bool:
        """Whether the stream is currently open."""
        return (
            self._transport is not None
            and self._transport.ready_state == ReadyState.OPEN
        )

    @staticmethod
    async def create_channel(base_url: str = DEFAULT_RELAY_URL) -> str:
        """Create a new channel on the relay server and return its URL."""
        return await provision_channel(base_url)

    def subscribe(self, kind: Union[EventKind, str], callback: Listener) -> "RelayClient":
        """Register an event listener. Supports chaining."""
        self._dispatcher.subscribe(kind, callback)
        return self

    def unsubscribe(self, kind: Union[EventKind, str], callback: Listener) -> "RelayClient":
        """Remove an event listener."""
        self._dispatcher.unsubscribe(kind, callback)
        return self

    def start(self) -> None:
        """Start receiving events. No-op if a transport already exists."""
        if self._transport is not None:
            return

        self._generation += 1
        generation = self._generation

        logger.debug(f"Opening event stream to {self._source}")
        transport = self._transport_factory(self._source)
        self._transport = transport

        transport.on_open = partial(self._handle_open, generation)
        transport.on_message = partial(self._handle_frame, generation)
        transport.on_error = partial(self._handle_error, generation)
        transport.add_event_listener("ping", partial(self._handle_ping, generation))

    def stop(self) -> None:
        """Stop receiving events and close the connection."""
        if self._transport is not None:
            self._transport.close()
            self._transport = None
            self._generation += 1
            logger.debug(f"Closed event stream to {self._source}")
        self._dispatcher.publish(EventKind.CLOSE, None)

    def _is_current(self, generation: int) -> bool:
        return self._transport is not None and generation == self._generation

    def _handle_open(self, generation: int) -> None:
        if self._is_current(generation):
            self._dispatcher.publish(EventKind.OPEN, None)

    def _handle_frame(self, generation: int, event: StreamEvent) -> None:
        if not self._is_current(generation):
            return
        try:
            message = decode_frame(event.data)
        except DecodeError as e:
            logger.debug(f"Dropping undecodable frame: {e}")
            self._dispatcher.publish(EventKind.ERROR, e)
            return
        self._dispatcher.publish(EventKind.MESSAGE, message)

    def _handle_ping(self, generation: int, event: StreamEvent) -> None:
        if self._is_current(generation):
            self._dispatcher.publish(EventKind.PING, None)

    def _handle_error(self, generation: int, error: Any) -> None:
        if self._is_current(generation):
            self._dispatcher.publish(
                EventKind.ERROR, TransportError(_error_text(error), cause=error)
            )


def _error_text(error: Any) -> str:
    if isinstance(error, Mapping):
        message = error.get("message")
    else:
        message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    if isinstance(error, BaseException) and str(error):
        return str(error)
    return DEFAULT_ERROR_MESSAGE
