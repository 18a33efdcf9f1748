"""
Discovery Module - Service Announce / Query / Listen

Built on the multicast transport:
- announce(): broadcast presence and answer queries for a name
- listen_for(): wait until a set of names has been seen
- query(): ask who serves a name
"""

from .protocol import DiscoveryMessage, MessageKind, decode, encode
from .announcer import Announcer, announce
from .listener import NameListener, listen_for
from .query import DEFAULT_QUERY_TIMEOUT, query

__all__ = [
    'DiscoveryMessage',
    'MessageKind',
    'decode',
    'encode',
    'Announcer',
    'announce',
    'NameListener',
    'listen_for',
    'DEFAULT_QUERY_TIMEOUT',
    'query',
]
