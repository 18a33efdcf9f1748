"""
disco - Service discovery over IP multicast

Processes announce themselves under a name, query for named peers and
answer queries, using plain-text UDP datagrams on a shared multicast group.
"""

from .errors import (
    AddressResolutionError,
    DecodeError,
    DiscoError,
    InvalidArgumentError,
    MessageTooLargeError,
    ReadError,
    SocketError,
)
from .transport import ReceivedDatagram, Subscription, broadcast, resolve, subscribe
from .discovery import (
    Announcer,
    DiscoveryMessage,
    MessageKind,
    NameListener,
    announce,
    decode,
    encode,
    listen_for,
    query,
)

__version__ = '0.1.0'

__all__ = [
    'AddressResolutionError',
    'DecodeError',
    'DiscoError',
    'InvalidArgumentError',
    'MessageTooLargeError',
    'ReadError',
    'SocketError',
    'ReceivedDatagram',
    'Subscription',
    'broadcast',
    'resolve',
    'subscribe',
    'Announcer',
    'DiscoveryMessage',
    'MessageKind',
    'NameListener',
    'announce',
    'decode',
    'encode',
    'listen_for',
    'query',
]
