"""
UDP Multicast Transport

Design Decision: One Socket per Subscriber
==========================================

Options Considered:
1. Shared socket + in-process dispatcher
   - One receive loop for everything
   - Needs a broker to route datagrams to listeners

2. Independent socket per subscription
   - The OS copies every group datagram to each joined socket
   - No shared state between listeners

Decision: Independent socket per subscription
- Multicast fan-out already does the routing
- Announcers, listeners and queries compose by each owning a subscription
- Closing one subscription never affects another

Delivery:
- The receive loop hands each datagram to the consumer and waits until it
  was taken before reading the next one. A slow consumer leaves datagrams
  in the OS socket buffer instead of piling them up in memory.
- Oversized datagrams are dropped and reported, never truncated.
"""

import asyncio
import ipaddress
import logging
import socket
import struct
import sys
from dataclasses import dataclass
from typing import Optional, Tuple

from ..errors import (
    AddressResolutionError,
    MessageTooLargeError,
    ReadError,
    SocketError,
)

logger = logging.getLogger(__name__)

# Largest payload a subscriber accepts (and a sender will send)
DEFAULT_MAX_DATAGRAM_SIZE = 8192

# Keep multicast on the local segment
DEFAULT_TTL = 1


def resolve(addr: str) -> Tuple[str, int]:
    """
    Parse an IPv4 "host:port" string.

    An empty host means any address and an empty port means port 0.

    Args:
        addr: Address such as "224.0.0.1:9999"

    Returns:
        (host, port) tuple with the host as a dotted-quad (or "")

    Raises:
        AddressResolutionError: If the address is malformed or unresolvable
    """
    host, sep, port_str = addr.rpartition(':')
    if not sep:
        raise AddressResolutionError(f"resolve {addr!r}: missing port in address")

    if port_str == '':
        port = 0
    else:
        if not (port_str.isascii() and port_str.isdigit()):
            raise AddressResolutionError(f"resolve {addr!r}: invalid port {port_str!r}")
        port = int(port_str)
        if port > 65535:
            raise AddressResolutionError(f"resolve {addr!r}: port {port} out of range")

    if host == '':
        return '', port

    try:
        return str(ipaddress.IPv4Address(host)), port
    except ValueError:
        pass

    # Dotted numbers that are not a valid IPv4 literal never go to DNS
    if host.replace('.', '').isdigit():
        raise AddressResolutionError(f"resolve {addr!r}: invalid IPv4 address {host!r}")

    try:
        infos = socket.getaddrinfo(host, port, socket.AF_INET, socket.SOCK_DGRAM)
    except (OSError, UnicodeError) as e:
        raise AddressResolutionError(f"resolve {addr!r}: {e}") from e

    if not infos:
        raise AddressResolutionError(f"resolve {addr!r}: no IPv4 address found")

    return infos[0][4][0], port


def broadcast(addr: str, message: str, *,
              interface: Optional[str] = None,
              ttl: int = DEFAULT_TTL,
              max_datagram_size: int = DEFAULT_MAX_DATAGRAM_SIZE):
    """
    Send one datagram to a multicast address.

    Fire-and-forget: nothing is retried and no acknowledgement is awaited.

    Args:
        addr: Group address in "ipaddr:port" form
        message: Text payload
        interface: Local IPv4 address of the outgoing interface (default: OS choice)
        ttl: Multicast time-to-live
        max_datagram_size: Refuse payloads larger than this

    Raises:
        AddressResolutionError: If addr cannot be resolved
        MessageTooLargeError: If the encoded payload is too large
        SocketError: If the socket cannot be created or written
    """
    host, port = resolve(addr)

    data = message.encode('utf-8')
    if len(data) > max_datagram_size:
        raise MessageTooLargeError(len(data), max_datagram_size)

    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    except OSError as e:
        raise SocketError(f"broadcast socket {addr!r}: {e}") from e

    try:
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, ttl)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, 1)
        if interface:
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF,
                            socket.inet_aton(interface))
        sock.connect((host, port))
        sock.send(data)
    except OSError as e:
        raise SocketError(f"broadcast dial {addr!r}: {e}") from e
    finally:
        sock.close()

    logger.debug(f"Broadcast {len(data)} bytes to {addr}")


@dataclass
class ReceivedDatagram:
    """
    One result of a multicast read.

    Either a message with its sender ("ip:port"), or an error. A ReadError
    ends the stream; a MessageTooLargeError only marks a dropped datagram.
    """
    message: str = ''
    source: str = ''
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Subscription:
    """
    A stream of datagrams received on one socket.

    Iterate with ``async for`` or call ``receive()``. The background receive
    task runs until the socket fails or ``close()`` is called.
    """

    def __init__(self, sock: socket.socket, address: str = '',
                 max_datagram_size: int = DEFAULT_MAX_DATAGRAM_SIZE):
        """
        Start receiving on an already bound socket.

        Must be called from a running event loop. Takes ownership of sock.

        Args:
            sock: Bound UDP socket
            address: The address this socket listens on (informational)
            max_datagram_size: Largest accepted datagram
        """
        self.address = address
        self.max_datagram_size = max_datagram_size

        self._socket = sock
        self._socket.setblocking(False)

        # Single slot; the loop waits on join() so every put is a hand-off
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._finished = False
        self._closed = False

        self._task: asyncio.Task = asyncio.get_running_loop().create_task(
            self._receive_loop()
        )

    @property
    def closed(self) -> bool:
        """Whether the stream has finished (closed or failed)."""
        return self._closed or self._finished

    async def _deliver(self, datagram: ReceivedDatagram):
        await self._queue.put(datagram)
        await self._queue.join()

    async def _receive_loop(self):
        """Read datagrams until the socket fails or the task is cancelled."""
        loop = asyncio.get_running_loop()

        try:
            while True:
                try:
                    data, src = await loop.sock_recvfrom(
                        self._socket, self.max_datagram_size + 1
                    )
                except OSError as e:
                    logger.error(f"Read failed on {self.address}: {e}")
                    error = ReadError(f"read {self.address}: {e}")
                    error.__cause__ = e
                    await self._deliver(ReceivedDatagram(error=error))
                    return

                source = f"{src[0]}:{src[1]}"

                if len(data) > self.max_datagram_size:
                    logger.warning(
                        f"Dropped oversized datagram from {source} on {self.address}"
                    )
                    await self._deliver(ReceivedDatagram(
                        source=source,
                        error=MessageTooLargeError(len(data), self.max_datagram_size),
                    ))
                    continue

                try:
                    text = data.decode('utf-8')
                except UnicodeDecodeError:
                    logger.debug(f"Dropped undecodable datagram from {source}")
                    continue

                logger.debug(f"Received {len(data)} bytes from {source}")
                await self._deliver(ReceivedDatagram(
                    message=text,
                    source=source,
                ))
        finally:
            self._socket.close()

    async def receive(self) -> Optional[ReceivedDatagram]:
        """
        Wait for the next datagram.

        Returns:
            The next ReceivedDatagram, or None once the stream has finished
        """
        if self.closed:
            return None

        item = await self._queue.get()
        self._queue.task_done()

        if item is None:
            return None

        if isinstance(item.error, ReadError):
            self._finished = True

        return item

    async def close(self):
        """Stop the receive task, release the socket and end the stream."""
        if self._closed:
            return
        self._closed = True

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

        # A task cancelled before its first step never reaches its finally
        self._socket.close()

        # Wake any consumer still waiting in receive()
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
        self._queue.put_nowait(None)

        logger.info(f"Subscription to {self.address} closed")

    def __aiter__(self):
        return self

    async def __anext__(self) -> ReceivedDatagram:
        datagram = await self.receive()
        if datagram is None:
            raise StopAsyncIteration
        return datagram

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()


def _open_multicast_socket(host: str, port: int,
                           interface: Optional[str] = None) -> socket.socket:
    """Create a UDP socket bound to the group port and joined to the group."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)

    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Several subscribers on one host share the port
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        except (AttributeError, OSError):
            pass

        # Windows cannot bind to a group address
        if sys.platform == 'win32':
            sock.bind(('', port))
        else:
            sock.bind((host, port))

        mreq = struct.pack(
            '4s4s',
            socket.inet_aton(host or '0.0.0.0'),
            socket.inet_aton(interface or '0.0.0.0'),
        )
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
    except OSError:
        sock.close()
        raise

    return sock


async def subscribe(addr: str, *,
                    interface: Optional[str] = None,
                    max_datagram_size: int = DEFAULT_MAX_DATAGRAM_SIZE) -> Subscription:
    """
    Start listening on a multicast address.

    The group is joined before this returns, so anything broadcast
    afterwards is seen by the subscription.

    Args:
        addr: Group address in "ipaddr:port" form
        interface: Local IPv4 address of the interface to join on (default: any)
        max_datagram_size: Largest accepted datagram

    Returns:
        A running Subscription

    Raises:
        AddressResolutionError: If addr cannot be resolved
        SocketError: If binding or joining the group fails
    """
    host, port = resolve(addr)

    try:
        sock = _open_multicast_socket(host, port, interface)
    except OSError as e:
        raise SocketError(f"subscribe listen {addr!r}: {e}") from e

    logger.info(f"Subscribed to {addr}")
    return Subscription(sock, address=addr, max_datagram_size=max_datagram_size)
