"""
Local delivery of forwarded webhooks.

Re-sends each relayed request to a local HTTP target with the original
body text, headers and query parameters, so the target sees (and can
verify signatures on) the same request the relay received.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

import aiohttp

from relay_client.message import ForwardedMessage

logger = logging.getLogger(__name__)

# Headers that describe the relay hop rather than the original request
SKIPPED_HEADERS = frozenset(
    {
        "host",
        "content-length",
        "connection",
        "keep-alive",
        "transfer-encoding",
        "upgrade",
        "accept-encoding",
    }
)


@dataclass
class ForwardingStats:
    """Statistics for local delivery."""

    messages_delivered: int = 0
    messages_failed: int = 0
    total_delivery_time_ms: float = 0.0


class WebhookForwarder:
    """Delivers forwarded messages to a local target URL."""

    def __init__(
        self,
        target_url: str,
        timeout_seconds: float = 30.0,
        verify_ssl: bool = True,
    ):
        self.target_url = target_url
        self.timeout_seconds = timeout_seconds
        self.verify_ssl = verify_ssl

        self._session: Optional[aiohttp.ClientSession] = None
        self._tasks: Set[asyncio.Task] = set()
        self._stats = ForwardingStats()
        self._running = False

    async def start(self) -> None:
        """Start the forwarder."""
        if self._running:
            return

        self._session = aiohttp.ClientSession()
        self._running = True
        logger.info(f"Forwarding webhooks to {self.target_url}")

    async def stop(self) -> None:
        """Cancel pending deliveries and close the HTTP session."""
        self._running = False

        for task in list(self._tasks):
            if not task.done():
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

        logger.info("Forwarder stopped")

    def handle(self, message: ForwardedMessage) -> None:
        """
        Message listener: schedule delivery of ``message``.

        Runs synchronously inside the client's dispatch, so delivery itself
        happens in a separate task.
        """
        if not self._running:
            logger.warning("Forwarder not running, ignoring message")
            return

        task = asyncio.get_running_loop().create_task(self._forward_logged(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _forward_logged(self, message: ForwardedMessage) -> None:
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        try:
            status = await self.forward(message)
        except asyncio.TimeoutError:
            self._stats.messages_failed += 1
            logger.error(f"Timed out delivering webhook to {self.target_url}")
            return
        except aiohttp.ClientError as e:
            self._stats.messages_failed += 1
            logger.error(f"Failed to deliver webhook to {self.target_url}: {e}")
            return
        except Exception as e:
            self._stats.messages_failed += 1
            logger.error(f"Error delivering webhook to {self.target_url}: {e}")
            return

        duration = (loop.time() - start_time) * 1000
        if 200 <= status < 300:
            self._stats.messages_delivered += 1
            self._stats.total_delivery_time_ms += duration
            logger.info(f"POST {self.target_url} - {status} ({duration:.0f} ms)")
        else:
            self._stats.messages_failed += 1
            logger.warning(f"POST {self.target_url} - {status} ({duration:.0f} ms)")

    async def forward(self, message: ForwardedMessage) -> int:
        """
        Deliver a single message to the target.

        Returns:
            HTTP status code of the target's response
        """
        if self._session is None:
            raise RuntimeError("Forwarder is not started")

        headers = build_headers(message)
        data = message.raw_body.encode("utf-8") if message.raw_body else None

        async with self._session.post(
            self.target_url,
            headers=headers,
            params=message.query or None,
            data=data,
            timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ssl=self.verify_ssl,
        ) as response:
            return response.status

    def get_stats(self) -> Dict[str, Any]:
        """Get delivery statistics."""
        return {
            "messages_delivered": self._stats.messages_delivered,
            "messages_failed": self._stats.messages_failed,
            "pending_count": len(self._tasks),
            "running": self._running,
        }


def build_headers(message: ForwardedMessage) -> Dict[str, str]:
    """Original request headers to replay against the local target."""
    headers = {
        key: value
        for key, value in message.headers.items()
        if key.lower() not in SKIPPED_HEADERS
    }
    if message.get_header("content-type") is None:
        headers["Content-Type"] = "application/json"
    return headers
