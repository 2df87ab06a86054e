"""
Session Protocol Core Module

This module exports the message codec, record store, datagram transport and
the client and server session state machines.
"""

from .client import LOOKUP_TEST_CASES, ClientContext, ClientSession, ClientState
from .errors import (
    InvalidPayloadShape,
    LookupFailure,
    MalformedMessage,
    ProtocolError,
    TransportFailure,
    UnexpectedMessageType,
)
from .message import (
    DNSRecord,
    Envelope,
    Message,
    MessageType,
    create_ack,
    create_lookup,
    decode,
    decode_envelope,
    decode_payload,
    encode,
)
from .records import RecordStore, load_records
from .server import ServerContext, ServerSession, ServerState
from .transport import UDPEndpoint

__all__ = [
    # State machines
    "ClientSession",
    "ClientContext",
    "ClientState",
    "LOOKUP_TEST_CASES",
    "ServerSession",
    "ServerContext",
    "ServerState",
    # Message components
    "Message",
    "MessageType",
    "DNSRecord",
    "Envelope",
    "encode",
    "decode",
    "decode_envelope",
    "decode_payload",
    "create_lookup",
    "create_ack",
    # Records and transport
    "RecordStore",
    "load_records",
    "UDPEndpoint",
    # Errors
    "ProtocolError",
    "MalformedMessage",
    "InvalidPayloadShape",
    "UnexpectedMessageType",
    "TransportFailure",
    "LookupFailure",
]
