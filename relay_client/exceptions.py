"""
Error types raised or published by the relay client.

Transport and decode failures are never raised out of the event loop;
they are published on the ``error`` event kind. Provisioning failures are
raised to the caller of ``provision_channel``.
"""

from typing import Any, Optional


class RelayClientError(Exception):
    """Base class for all relay client errors."""


class TransportError(RelayClientError):
    """The push-stream transport reported an error."""

    def __init__(self, message: str, cause: Any = None):
        super().__init__(message)
        self.message = message
        # The transport may report a non-exception error object.
        self.cause = cause
        if isinstance(cause, BaseException):
            self.__cause__ = cause


class StreamStatusError(TransportError):
    """The relay answered the stream request with an unexpected HTTP status."""

    def __init__(self, status: int, reason: Optional[str] = None):
        message = f"Unexpected stream response status {status}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.status = status


class DecodeError(RelayClientError, ValueError):
    """A frame could not be decoded into a forwarded message."""


class ProvisioningError(RelayClientError):
    """The relay did not return an address for a new channel."""
