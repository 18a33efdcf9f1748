"""
Discovery Wire Protocol

Design Decision: Message Format
===============================

Options Considered:
1. JSON - Self-describing, larger, needs a parser on every peer
2. Semicolon-delimited text - Tiny, trivially parsed, human readable

Decision: Semicolon-delimited text
- Many unrelated programs may share a multicast group; a fixed "srvc"
  tag makes our datagrams easy to recognise and everything else easy to skip
- Readable with tcpdump

Format:
```
srvc;<kind>;<sourceAddress>;<name>
```

kind is one of: announce, query, response
"""

from dataclasses import dataclass
from enum import Enum

from ..errors import DecodeError, InvalidArgumentError

PROTOCOL_TAG = "srvc"
FIELD_SEPARATOR = ";"


class MessageKind(Enum):
    """Discovery message kinds."""
    ANNOUNCE = "announce"
    QUERY = "query"
    RESPONSE = "response"


@dataclass(frozen=True)
class DiscoveryMessage:
    """
    A discovery message.

    - kind: announce, query or response
    - source_address: address of the sender's service (opaque to disco)
    - name: service name
    """
    kind: MessageKind
    source_address: str
    name: str

    def __post_init__(self):
        if not isinstance(self.kind, MessageKind):
            raise InvalidArgumentError(f"unknown message kind: {self.kind!r}")
        for field_name in ('source_address', 'name'):
            value = getattr(self, field_name)
            if not value:
                raise InvalidArgumentError(f"{field_name} must not be empty")
            if FIELD_SEPARATOR in value:
                raise InvalidArgumentError(
                    f"{field_name} must not contain {FIELD_SEPARATOR!r}: {value!r}"
                )

    def __str__(self) -> str:
        return encode(self)


def encode(message: DiscoveryMessage) -> str:
    """Serialize a message to its wire form."""
    return FIELD_SEPARATOR.join(
        (PROTOCOL_TAG, message.kind.value, message.source_address, message.name)
    )


def decode(text: str) -> DiscoveryMessage:
    """
    Parse a wire record.

    Raises:
        DecodeError: If the text is not a complete srvc record
    """
    fields = text.split(FIELD_SEPARATOR)

    if len(fields) != 4 or fields[0] != PROTOCOL_TAG:
        raise DecodeError(f"missing protocol declaration: {text!r}")

    _, kind, source_address, name = fields
    if not kind or not source_address or not name:
        raise DecodeError(f"missing query type, address or name: {text!r}")

    try:
        return DiscoveryMessage(MessageKind(kind), source_address, name)
    except ValueError as e:
        raise DecodeError(f"unknown message kind {kind!r}") from e
