"""
Name Watcher

Waits for a set of service names to show up on a multicast group.
Announce and response messages both count as a service being present.
"""

import logging
from typing import Iterable, Optional, Set

from ..errors import DecodeError, ReadError
from ..transport import DEFAULT_MAX_DATAGRAM_SIZE, Subscription, subscribe
from .protocol import MessageKind, decode

logger = logging.getLogger(__name__)

# Message kinds that prove a name is being served
PRESENCE_KINDS = (MessageKind.ANNOUNCE, MessageKind.RESPONSE)


class NameListener:
    """
    Async iterator over watched names as they are seen.

    Every name is yielded at most once. Iteration ends, and the
    subscription is closed, once all names have been seen.
    """

    def __init__(self, subscription: Subscription, names: Iterable[str]):
        self._subscription = subscription
        self._pending: Set[str] = set(names)

    @property
    def pending(self) -> Set[str]:
        """Names not seen yet."""
        return set(self._pending)

    async def close(self):
        """Stop listening and release the subscription."""
        self._pending.clear()
        await self._subscription.close()

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        while self._pending:
            datagram = await self._subscription.receive()
            if datagram is None:
                break

            if isinstance(datagram.error, ReadError):
                await self.close()
                raise datagram.error
            if not datagram.ok:
                continue

            try:
                message = decode(datagram.message)
            except DecodeError:
                continue

            if message.kind not in PRESENCE_KINDS or message.name not in self._pending:
                continue

            self._pending.discard(message.name)
            logger.info(f"Found {message.name!r} at {message.source_address}")
            if not self._pending:
                await self._subscription.close()
            return message.name

        await self.close()
        raise StopAsyncIteration

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()


async def listen_for(group: str, *names: str,
                     interface: Optional[str] = None,
                     max_datagram_size: int = DEFAULT_MAX_DATAGRAM_SIZE) -> NameListener:
    """
    Watch a multicast group for the given service names.

    Args:
        group: Multicast group in "ipaddr:port" form
        *names: Names to wait for; duplicates collapse
        interface: Local IPv4 address of the interface to join on
        max_datagram_size: Largest accepted datagram

    Returns:
        A NameListener yielding each name once as it is seen

    Raises:
        AddressResolutionError: If group cannot be resolved
        SocketError: If the group cannot be joined
    """
    subscription = await subscribe(
        group, interface=interface, max_datagram_size=max_datagram_size
    )
    logger.info(f"Listening on {group} for {sorted(set(names))}")
    return NameListener(subscription, names)
