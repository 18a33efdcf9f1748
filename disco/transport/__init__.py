"""
Transport Module - UDP Multicast

Sends single datagrams to a multicast group and streams datagrams
received on independently joined sockets.
"""

from .multicast import (
    DEFAULT_MAX_DATAGRAM_SIZE,
    DEFAULT_TTL,
    ReceivedDatagram,
    Subscription,
    broadcast,
    resolve,
    subscribe,
)

__all__ = [
    'DEFAULT_MAX_DATAGRAM_SIZE',
    'DEFAULT_TTL',
    'ReceivedDatagram',
    'Subscription',
    'broadcast',
    'resolve',
    'subscribe',
]
