"""
Session Message Codec

This module implements the JSON message envelope exchanged between the
client and server session state machines:
- Message type enumeration with the exact wire spellings
- DNS record payload shape
- Typed message construction (payload shape is checked against the type)
- Two-step decoding: envelope first, then the payload for its type
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from .errors import InvalidPayloadShape, MalformedMessage

# Envelope field names
MSG_ID_FIELD = "MsgId"
MSG_TYPE_FIELD = "MsgType"
CONTENT_FIELD = "Content"


class MessageType(Enum):
    """Message types, valued by their wire spelling.

    Declaration order matches the ordinal values used by peers that send the
    type as an integer.
    """

    HELLO = "Hello"
    WELCOME = "Welcome"
    DNS_LOOKUP = "DNSLookup"
    DNS_LOOKUP_REPLY = "DNSLookupReply"
    DNS_RECORD = "DNSRecord"  # never sent as a top-level type
    ACK = "Ack"
    END = "End"
    ERROR = "Error"

    @classmethod
    def from_wire(cls, value: Any) -> "MessageType":
        """Parse a wire type given by name or by ordinal"""
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                pass
        elif isinstance(value, int) and not isinstance(value, bool):
            members = list(cls)
            if 0 <= value < len(members):
                return members[value]

        raise MalformedMessage(f"Unknown message type: {value!r}")


class PayloadKind(Enum):
    """Content shapes a message can carry"""

    TEXT = "text"
    INTEGER = "integer"
    RECORD = "record"


PAYLOAD_KINDS: Dict[MessageType, PayloadKind] = {
    MessageType.HELLO: PayloadKind.TEXT,
    MessageType.WELCOME: PayloadKind.TEXT,
    MessageType.DNS_LOOKUP: PayloadKind.RECORD,
    MessageType.DNS_LOOKUP_REPLY: PayloadKind.RECORD,
    MessageType.DNS_RECORD: PayloadKind.RECORD,
    MessageType.ACK: PayloadKind.INTEGER,
    MessageType.END: PayloadKind.TEXT,
    MessageType.ERROR: PayloadKind.TEXT,
}

# Types whose content may be null on the wire
NULLABLE_TYPES = frozenset(
    {
        MessageType.HELLO,
        MessageType.WELCOME,
        MessageType.DNS_LOOKUP_REPLY,
        MessageType.DNS_RECORD,
        MessageType.END,
        MessageType.ERROR,
    }
)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class DNSRecord:
    """DNS record, used both as a lookup query and as an answer"""

    record_type: str
    name: str
    value: Optional[str] = None
    ttl: Optional[int] = None
    priority: Optional[int] = None  # MX-like types only

    @property
    def key(self):
        """Lookup identity of the record"""
        return (self.record_type, self.name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to its wire object"""
        return {
            "Type": self.record_type,
            "Name": self.name,
            "Value": self.value,
            "TTL": self.ttl,
            "Priority": self.priority,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "DNSRecord":
        """Build a record from its wire object.

        Raises:
            InvalidPayloadShape: If the object does not have the record shape
        """
        if not isinstance(data, dict):
            raise InvalidPayloadShape(
                f"DNS record must be an object, got {type(data).__name__}"
            )

        for field_name in ("Type", "Name"):
            if not isinstance(data.get(field_name), str):
                raise InvalidPayloadShape(
                    f"DNS record field {field_name} must be a string"
                )

        value = data.get("Value")
        if value is not None and not isinstance(value, str):
            raise InvalidPayloadShape("DNS record field Value must be a string")

        for field_name in ("TTL", "Priority"):
            number = data.get(field_name)
            if number is not None and not _is_int(number):
                raise InvalidPayloadShape(
                    f"DNS record field {field_name} must be an integer"
                )

        return cls(
            record_type=data["Type"],
            name=data["Name"],
            value=value,
            ttl=data.get("TTL"),
            priority=data.get("Priority"),
        )

    def __str__(self) -> str:
        return f"{self.record_type} {self.name}: {self.value}"


Payload = Union[str, int, DNSRecord, None]


def check_content(msg_type: MessageType, content: Payload) -> None:
    """Check that content has the payload shape required by msg_type.

    Raises:
        InvalidPayloadShape: If the content does not match
    """
    if content is None:
        if msg_type not in NULLABLE_TYPES:
            raise InvalidPayloadShape(f"{msg_type.value} message requires content")
        return

    kind = PAYLOAD_KINDS[msg_type]
    if kind is PayloadKind.TEXT:
        valid = isinstance(content, str)
    elif kind is PayloadKind.INTEGER:
        valid = _is_int(content)
    else:
        valid = isinstance(content, DNSRecord)

    if not valid:
        raise InvalidPayloadShape(
            f"{msg_type.value} message expects {kind.value} content, "
            f"got {type(content).__name__}"
        )


@dataclass(frozen=True)
class Message:
    """Typed session message"""

    msg_id: int
    msg_type: MessageType
    content: Payload = None

    def __post_init__(self):
        if not isinstance(self.msg_type, MessageType):
            raise ValueError(f"Invalid message type: {self.msg_type!r}")
        if not _is_int(self.msg_id) or self.msg_id < 1:
            raise ValueError(f"Message id must be a positive integer: {self.msg_id!r}")
        check_content(self.msg_type, self.content)

    @property
    def record(self) -> Optional[DNSRecord]:
        """Record payload of DNSLookup/DNSLookupReply messages"""
        if isinstance(self.content, DNSRecord):
            return self.content
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert message to its wire envelope"""
        content = self.content
        if isinstance(content, DNSRecord):
            content = content.to_dict()

        return {
            MSG_ID_FIELD: self.msg_id,
            MSG_TYPE_FIELD: self.msg_type.value,
            CONTENT_FIELD: content,
        }

    def to_bytes(self) -> bytes:
        """Serialize message for a single datagram"""
        return encode(self)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Message":
        """Parse message from a single datagram"""
        return decode(data)


@dataclass(frozen=True)
class Envelope:
    """Decoded envelope whose content has not been interpreted yet"""

    msg_id: int
    msg_type: MessageType
    content: Any = None


def encode(message: Message) -> bytes:
    """Serialize a message. The datagram boundary is the message boundary."""
    return json.dumps(message.to_dict(), separators=(",", ":")).encode("utf-8")


def decode_envelope(data: bytes) -> Envelope:
    """Parse the message envelope without interpreting its content.

    Raises:
        MalformedMessage: If the bytes are not a well-formed envelope
    """
    try:
        document = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError, RecursionError) as e:
        raise MalformedMessage(f"Message is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise MalformedMessage("Message envelope must be a JSON object")

    for field_name in (MSG_ID_FIELD, MSG_TYPE_FIELD):
        if field_name not in document:
            raise MalformedMessage(f"Message envelope is missing {field_name}")

    msg_id = document[MSG_ID_FIELD]
    if not _is_int(msg_id) or msg_id < 1:
        raise MalformedMessage(f"Invalid message id: {msg_id!r}")

    msg_type = MessageType.from_wire(document[MSG_TYPE_FIELD])

    return Envelope(msg_id, msg_type, document.get(CONTENT_FIELD))


def decode_payload(envelope: Envelope) -> Message:
    """Interpret envelope content according to its message type.

    Raises:
        InvalidPayloadShape: If the content does not fit the message type
    """
    content = envelope.content
    if content is not None and PAYLOAD_KINDS[envelope.msg_type] is PayloadKind.RECORD:
        content = DNSRecord.from_dict(content)

    return Message(envelope.msg_id, envelope.msg_type, content)


def decode(data: bytes) -> Message:
    """Parse a datagram into a typed message.

    Raises:
        MalformedMessage: If the envelope is not well formed
        InvalidPayloadShape: If the content does not fit the message type
    """
    return decode_payload(decode_envelope(data))


def create_lookup(msg_id: int, record_type: str, name: str) -> Message:
    """Create a DNSLookup query message"""
    return Message(msg_id, MessageType.DNS_LOOKUP, DNSRecord(record_type, name))


def create_ack(msg_id: int, acked_msg_id: int) -> Message:
    """Create an Ack for a previously received lookup"""
    return Message(msg_id, MessageType.ACK, acked_msg_id)
