"""
Error Types

Every failure raised by disco derives from DiscoError. Socket-level
problems keep the underlying OSError as their __cause__.
"""


class DiscoError(Exception):
    """Base class for all disco errors."""


class AddressResolutionError(DiscoError):
    """A host:port string was malformed or could not be resolved."""


class SocketError(DiscoError):
    """Creating, binding, joining or writing a socket failed."""


class ReadError(DiscoError):
    """Reading from a subscription socket failed. Terminal for that stream."""


class MessageTooLargeError(DiscoError):
    """A datagram exceeded the configured maximum size."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"datagram of {size} bytes exceeds limit of {limit} bytes")
        self.size = size
        self.limit = limit


class DecodeError(DiscoError, ValueError):
    """Text was not a valid srvc record."""


class InvalidArgumentError(DiscoError, ValueError):
    """A caller passed an unusable argument, e.g. an empty service name."""
