"""
Typed publish/subscribe registry.

Listeners are grouped by event kind and invoked synchronously, in the
order they were registered, every time a value is published for that kind.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class EventKind(str, Enum):
    """Event kinds published by a relay client."""

    MESSAGE = "message"
    OPEN = "open"
    ERROR = "error"
    CLOSE = "close"
    PING = "ping"


class Dispatcher:
    """Maps event kinds to ordered sets of listeners."""

    def __init__(self):
        # Membership is by equality, so listeners need not be hashable
        self._listeners: Dict[EventKind, List[Listener]] = {
            kind: [] for kind in EventKind
        }

    def subscribe(self, kind: Union[EventKind, str], callback: Listener) -> "Dispatcher":
        """
        Register a listener for an event kind.

        Args:
            kind: Event kind (``EventKind`` member or its string value)
            callback: Function called with the published value

        Returns:
            The dispatcher, to allow chained registration
        """
        listeners = self._listeners[EventKind(kind)]
        if callback not in listeners:
            listeners.append(callback)
        return self

    def unsubscribe(self, kind: Union[EventKind, str], callback: Listener) -> "Dispatcher":
        """Remove a listener. Unknown listeners are ignored."""
        listeners = self._listeners[EventKind(kind)]
        if callback in listeners:
            listeners.remove(callback)
        return self

    def publish(self, kind: Union[EventKind, str], value: Any = None) -> None:
        """
        Invoke every listener registered for ``kind`` with ``value``.

        A listener that raises is logged and skipped; the remaining
        listeners still run.
        """
        kind = EventKind(kind)
        for callback in list(self._listeners[kind]):
            try:
                callback(value)
            except Exception:
                logger.exception(f"Listener {callback!r} for '{kind.value}' failed")

    def listeners(self, kind: Union[EventKind, str]) -> List[Listener]:
        """Listeners registered for ``kind``, in registration order."""
        return list(self._listeners[EventKind(kind)])

    def clear(self, kind: Optional[Union[EventKind, str]] = None) -> None:
        """Remove all listeners for ``kind``, or for every kind."""
        kinds = [EventKind(kind)] if kind is not None else list(EventKind)
        for k in kinds:
            self._listeners[k].clear()
