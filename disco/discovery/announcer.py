"""
Service Announcer

Announces a service name on a multicast group and answers queries for it.

Lifecycle:
    Idle -> Announcing (announce broadcast sent) -> Responding

Each announce() call is independent. Calling it twice for the same name
starts two responders that both answer matching queries.
"""

import asyncio
import logging
from typing import Optional

from ..errors import DecodeError, DiscoError, InvalidArgumentError, ReadError
from ..transport import (
    DEFAULT_MAX_DATAGRAM_SIZE,
    DEFAULT_TTL,
    Subscription,
    broadcast,
    subscribe,
)
from .protocol import DiscoveryMessage, MessageKind, decode, encode

logger = logging.getLogger(__name__)


class Announcer:
    """
    Handle for an announced service.

    Owns the responder task and its subscription. Call stop() to tear
    both down.
    """

    def __init__(self, group: str, source_address: str, name: str,
                 subscription: Subscription,
                 interface: Optional[str] = None,
                 ttl: int = DEFAULT_TTL):
        self.group = group
        self.source_address = source_address
        self.name = name
        self.interface = interface
        self.ttl = ttl

        self._subscription = subscription
        self._announcement = DiscoveryMessage(MessageKind.ANNOUNCE, source_address, name)
        self._response = DiscoveryMessage(MessageKind.RESPONSE, source_address, name)
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Start answering queries."""
        if self._task is None:
            self._task = asyncio.create_task(self._respond_loop())

    def reannounce(self):
        """Broadcast the announce message."""
        self._broadcast(self._announcement)
        logger.info(f"Announced {self.name!r} ({self.source_address}) on {self.group}")

    async def stop(self):
        """Stop answering queries and release the subscription."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        await self._subscription.close()
        logger.info(f"Stopped responding for {self.name!r}")

    def _broadcast(self, message: DiscoveryMessage):
        broadcast(
            self.group,
            encode(message),
            interface=self.interface,
            ttl=self.ttl,
            max_datagram_size=self._subscription.max_datagram_size,
        )

    async def _respond_loop(self):
        async for datagram in self._subscription:
            if isinstance(datagram.error, ReadError):
                logger.error(f"Responder for {self.name!r} stopped: {datagram.error}")
                return
            if not datagram.ok:
                continue

            try:
                message = decode(datagram.message)
            except DecodeError:
                continue

            if message.kind != MessageKind.QUERY or message.name != self.name:
                continue

            logger.debug(f"Query for {self.name!r} from {datagram.source}")
            try:
                self._broadcast(self._response)
            except DiscoError as e:
                logger.error(f"Failed to respond to query: {e}")

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.stop()


async def announce(group: str, source_address: str, name: str, *,
                   interface: Optional[str] = None,
                   ttl: int = DEFAULT_TTL,
                   max_datagram_size: int = DEFAULT_MAX_DATAGRAM_SIZE) -> Announcer:
    """
    Announce a service on a multicast group.

    Starts a responder that answers queries for name with source_address,
    then broadcasts one announce message.

    Args:
        group: Multicast group in "ipaddr:port" form
        source_address: Address other peers should use to reach the service
        name: Service name
        interface: Local IPv4 address of the interface to use
        ttl: Multicast time-to-live
        max_datagram_size: Largest datagram sent or accepted

    Returns:
        A running Announcer

    Raises:
        InvalidArgumentError: If name or source_address is empty or contains ';'
        AddressResolutionError: If group cannot be resolved
        SocketError: If the group cannot be joined or written
    """
    if not name:
        raise InvalidArgumentError("announce: empty name is not valid")
    # Rejects empty or unencodable fields before any socket is opened
    DiscoveryMessage(MessageKind.ANNOUNCE, source_address, name)

    subscription = await subscribe(
        group, interface=interface, max_datagram_size=max_datagram_size
    )
    announcer = Announcer(
        group, source_address, name, subscription,
        interface=interface, ttl=ttl,
    )
    announcer.start()

    try:
        announcer.reannounce()
    except DiscoError:
        await announcer.stop()
        raise

    return announcer
