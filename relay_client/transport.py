"""
Push-stream transport for relay channels.

Implements a Server-Sent Events client on top of aiohttp. The transport
owns the connection and its reconnection policy (exponential backoff with
jitter); consumers only see opened, message, named-event and error
callbacks, in the style of the browser ``EventSource`` interface.
"""

import asyncio
import codecs
import logging
import random
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional, Union

import aiohttp

from relay_client.config import ClientConfig
from relay_client.exceptions import StreamStatusError, TransportError

logger = logging.getLogger(__name__)


class ReadyState(IntEnum):
    """Connection state of a transport."""

    CONNECTING = 0
    OPEN = 1
    CLOSED = 2


@dataclass
class StreamEvent:
    """One event received from the stream."""

    type: str = "message"
    data: str = ""
    last_event_id: str = ""


EventHandler = Callable[[StreamEvent], None]


class EventStreamParser:
    """
    Incremental parser for the ``text/event-stream`` format.

    Text is fed as it arrives; complete events are returned once their
    terminating blank line has been seen.
    """

    def __init__(self):
        self.last_event_id = ""
        # Reconnection time requested by the server, in milliseconds
        self.retry: Optional[int] = None
        self.reset()

    def reset(self) -> None:
        """Drop any partially received event. ``last_event_id`` is kept."""
        self._buffer = ""
        self._event_type = ""
        self._data_lines: List[str] = []

    def feed(self, text: str) -> List[StreamEvent]:
        self._buffer += text
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()  # Keep incomplete line in buffer

        events = []
        for line in lines:
            event = self._process_line(line.rstrip("\r"))
            if event is not None:
                events.append(event)
        return events

    def _process_line(self, line: str) -> Optional[StreamEvent]:
        if line == "":
            return self._dispatch()

        if line.startswith(":"):
            return None

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event_type = value
        elif name == "data":
            self._data_lines.append(value)
        elif name == "id":
            if "\0" not in value:
                self.last_event_id = value
        elif name == "retry":
            if value.isdigit():
                self.retry = int(value)
        return None

    def _dispatch(self) -> Optional[StreamEvent]:
        event = None
        if self._data_lines:
            event = StreamEvent(
                type=self._event_type or "message",
                data="\n".join(self._data_lines),
                last_event_id=self.last_event_id,
            )
        self._event_type = ""
        self._data_lines = []
        return event


class Transport(ABC):
    """
    Abstract push-stream transport.

    Subclasses start connecting on construction and report progress via
    ``on_open``, ``on_message`` (default ``message`` events), named event
    listeners, and ``on_error``.
    """

    def __init__(self, url: str):
        self.url = url
        self.ready_state = ReadyState.CONNECTING
        self.on_open: Optional[Callable[[], None]] = None
        self.on_message: Optional[EventHandler] = None
        self.on_error: Optional[Callable[[Any], None]] = None
        self._listeners: Dict[str, List[EventHandler]] = {}

    def add_event_listener(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._listeners.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    def remove_event_listener(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._listeners.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    @abstractmethod
    def close(self) -> None:
        """Close the connection and stop reconnecting."""

    def _emit_open(self) -> None:
        if self.on_open:
            self.on_open()

    def _emit_event(self, event: StreamEvent) -> None:
        if event.type == "message":
            if self.on_message:
                self.on_message(event)
            return
        for handler in list(self._listeners.get(event.type, [])):
            handler(event)

    def _emit_error(self, error: Any) -> None:
        if self.on_error:
            self.on_error(error)


class EventStreamTransport(Transport):
    """
    Server-Sent Events transport backed by aiohttp.

    The connection task is scheduled on the running event loop as soon as
    the transport is created, so it must be constructed from a coroutine
    or a callback running on that loop.
    """

    def __init__(self, url: str, config: Optional[ClientConfig] = None):
        super().__init__(url)
        self.config = config or ClientConfig()
        self._parser = EventStreamParser()
        self._reconnect_delay = self.config.reconnect_delay
        # Server retry value the current delay was derived from
        self._applied_retry: Optional[int] = None
        self._closed = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.ready_state = ReadyState.CLOSED
        if not self._task.done():
            self._task.cancel()
        logger.debug(f"Event stream to {self.url} closed")

    async def _run(self) -> None:
        """Connect, stream, and reconnect until closed."""
        try:
            while not self._closed:
                retry = True
                try:
                    await self._connect()
                    error: Any = TransportError("Stream closed by server")
                except StreamStatusError as e:
                    error = e
                    retry = e.status >= 500
                except Exception as e:
                    error = e

                if self._closed:
                    break

                if not retry:
                    logger.error(f"Event stream to {self.url} failed: {error}")
                    self._closed = True
                    self.ready_state = ReadyState.CLOSED
                    self._emit_error(error)
                    break

                logger.warning(f"Event stream error: {error}")
                self.ready_state = ReadyState.CONNECTING
                self._emit_error(error)
                if self._closed:
                    break

                delay = self._next_delay()
                logger.info(f"Reconnecting in {delay:.1f} seconds...")
                await asyncio.sleep(delay)
        except asyncio.CancelledError:
            pass
        finally:
            self.ready_state = ReadyState.CLOSED

    async def _connect(self) -> None:
        """Open one stream request and consume it until it ends."""
        headers = {
            "Accept": "text/event-stream",
            "Cache-Control": "no-cache",
        }
        if self._parser.last_event_id:
            headers["Last-Event-ID"] = self._parser.last_event_id

        timeout = aiohttp.ClientTimeout(
            total=None,  # No timeout for the stream itself
            sock_connect=self.config.connection_timeout,
        )

        async with aiohttp.ClientSession() as session:
            async with session.get(
                self.url,
                headers=headers,
                timeout=timeout,
                ssl=self._create_ssl_context(),
            ) as response:
                if response.status != 200:
                    raise StreamStatusError(response.status, response.reason)

                self._parser.reset()
                self.ready_state = ReadyState.OPEN
                self._reconnect_delay = self._base_delay()
                self._applied_retry = self._parser.retry
                logger.info(f"Event stream connected to {self.url}")
                self._emit_open()

                await self._consume(response)

    async def _consume(self, response: aiohttp.ClientResponse) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

        async for chunk in response.content.iter_any():
            if self._closed:
                return
            for event in self._parser.feed(decoder.decode(chunk)):
                if self._closed:
                    return
                try:
                    self._emit_event(event)
                except Exception as e:
                    logger.error(f"Error handling stream event '{event.type}': {e}")

    def _base_delay(self) -> float:
        if self._parser.retry is not None:
            return self._parser.retry / 1000
        return self.config.reconnect_delay

    def _next_delay(self) -> float:
        """Current delay plus jitter; grows the delay for the next attempt."""
        if self._parser.retry != self._applied_retry:
            # A retry field received since the last open replaces the delay
            self._applied_retry = self._parser.retry
            self._reconnect_delay = self._base_delay()
        jitter = random.uniform(0, self._reconnect_delay * 0.3)
        delay = self._reconnect_delay + jitter
        self._reconnect_delay = min(
            self._reconnect_delay * self.config.reconnect_backoff_multiplier,
            self.config.max_reconnect_delay,
        )
        return delay

    def _create_ssl_context(self) -> Union[ssl.SSLContext, bool]:
        """Create SSL context from configuration.

        Returns:
            ssl.SSLContext for custom certs, False to disable verification,
            or True to use system defaults.
        """
        if not self.config.verify_ssl:
            return False

        if self.config.ca_cert_path or self.config.client_cert_path:
            ctx = ssl.create_default_context()

            if self.config.ca_cert_path:
                ctx.load_verify_locations(self.config.ca_cert_path)

            if self.config.client_cert_path:
                ctx.load_cert_chain(
                    self.config.client_cert_path, self.config.client_key_path
                )

            return ctx

        return True
