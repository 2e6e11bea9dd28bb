"""
Channel provisioning.

A relay server hands out a new channel when ``/new`` is requested; the
address of the channel is returned in the ``Location`` header of the
redirect response.
"""

import logging
from typing import Optional

import aiohttp

from relay_client.config import DEFAULT_RELAY_URL
from relay_client.exceptions import ProvisioningError

logger = logging.getLogger(__name__)


async def provision_channel(
    base_url: str = DEFAULT_RELAY_URL,
    session: Optional[aiohttp.ClientSession] = None,
) -> str:
    """
    Create a new relay channel.

    Args:
        base_url: Relay server URL
        session: Optional client session to reuse (left open)

    Returns:
        The new channel URL

    Raises:
        ProvisioningError: If the relay response has no Location header
    """
    url = base_url[:-1] if base_url.endswith("/") else base_url

    if session is None:
        async with aiohttp.ClientSession() as own_session:
            return await _request_channel(own_session, url)
    return await _request_channel(session, url)


async def _request_channel(session: aiohttp.ClientSession, url: str) -> str:
    async with session.head(f"{url}/new", allow_redirects=False) as response:
        location = response.headers.get("Location")

    if not location:
        raise ProvisioningError("Failed to create new relay channel")

    logger.info(f"Provisioned relay channel {location}")
    return location
