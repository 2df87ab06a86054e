"""
Protocol Errors

Exception hierarchy for the session protocol, plus the lookup outcomes that
the server reports to its peer as Error messages instead of raising.
"""

from enum import Enum
from typing import Iterable, Optional


class ProtocolError(Exception):
    """Base class for all protocol errors."""


class MalformedMessage(ProtocolError):
    """The datagram is not a well-formed message envelope."""


class InvalidPayloadShape(ProtocolError):
    """The envelope is valid but its content does not fit its message type."""


class UnexpectedMessageType(ProtocolError):
    """A valid message arrived that the current state does not accept."""

    def __init__(self, state: str, expected: Iterable, received: Optional[object]):
        self.state = state
        self.expected = tuple(expected)
        self.received = received

        expected_names = ", ".join(_type_name(t) for t in self.expected)
        super().__init__(
            f"{state}: expected {expected_names}, received {_type_name(received)}"
        )


class TransportFailure(ProtocolError):
    """Socket-level send or receive failure."""


class LookupFailure(Enum):
    """Reasons a lookup request is answered with an Error message."""

    RECORD_NOT_FOUND = "record_not_found"
    INCOMPLETE_REQUEST = "incomplete_request"
    INVALID_PAYLOAD = "invalid_payload"


def _type_name(value) -> str:
    if value is None:
        return "nothing"
    return getattr(value, "value", str(value))
