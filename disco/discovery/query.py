"""
Service Query

Asks a multicast group who serves a name and waits for the answer.
"""

import asyncio
import logging
from typing import Optional

from ..errors import DecodeError, InvalidArgumentError, ReadError
from ..transport import (
    DEFAULT_MAX_DATAGRAM_SIZE,
    DEFAULT_TTL,
    Subscription,
    broadcast,
    subscribe,
)
from .protocol import DiscoveryMessage, MessageKind, decode, encode

logger = logging.getLogger(__name__)

DEFAULT_QUERY_TIMEOUT = 3.0


async def _wait_for_response(subscription: Subscription, name: str) -> str:
    async for datagram in subscription:
        if isinstance(datagram.error, ReadError):
            raise datagram.error
        if not datagram.ok:
            continue

        try:
            message = decode(datagram.message)
        except DecodeError:
            continue

        if message.kind == MessageKind.RESPONSE and message.name == name:
            return message.source_address

    raise ReadError(f"subscription to {subscription.address} closed")


async def query(group: str, name: str, source_address: str, *,
                timeout: float = DEFAULT_QUERY_TIMEOUT,
                interface: Optional[str] = None,
                ttl: int = DEFAULT_TTL,
                max_datagram_size: int = DEFAULT_MAX_DATAGRAM_SIZE) -> str:
    """
    Find the address of the service announced under name.

    Args:
        group: Multicast group in "ipaddr:port" form
        name: Service name to look up
        source_address: Our own address, carried in the query
        timeout: Seconds to wait for a response

    Returns:
        source_address of the first matching response

    Raises:
        InvalidArgumentError: If name or source_address is empty
        TimeoutError: If nobody answers within timeout
    """
    if not name:
        raise InvalidArgumentError("query: empty name is not valid")
    request = DiscoveryMessage(MessageKind.QUERY, source_address, name)

    async with await subscribe(
        group, interface=interface, max_datagram_size=max_datagram_size
    ) as subscription:
        broadcast(
            group, encode(request),
            interface=interface, ttl=ttl, max_datagram_size=max_datagram_size,
        )
        logger.debug(f"Queried {group} for {name!r}")

        try:
            address = await asyncio.wait_for(
                _wait_for_response(subscription, name), timeout
            )
        except asyncio.TimeoutError:
            raise TimeoutError(f"No response for {name!r} on {group} after {timeout}s")

    logger.info(f"{name!r} is served at {address}")
    return address
