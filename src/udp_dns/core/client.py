"""
Client Session State Machine

Drives one client through a session with the server:
- Hello / Welcome handshake
- A fixed sequence of DNS lookups, each answered and then acknowledged
- Termination on the server's End message

Every receive blocks until a datagram arrives. A message the current state
does not accept is logged; it terminates the session only while waiting for
Welcome, otherwise the state machine keeps waiting in the same state.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..dns_logging import ProtocolLogger, log_exception
from .errors import (
    InvalidPayloadShape,
    MalformedMessage,
    ProtocolError,
    UnexpectedMessageType,
)
from .message import (
    Envelope,
    Message,
    MessageType,
    create_ack,
    create_lookup,
    decode_envelope,
    decode_payload,
    encode,
)
from .transport import Address

HELLO_TEXT = "Hello from client"

# (record type, name) queries issued in order on every run: two valid
# lookups, one with an unknown type and one with an empty type
LOOKUP_TEST_CASES: Tuple[Tuple[str, str], ...] = (
    ("A", "www.outlook.com"),
    ("A", "mail.example.com"),
    ("XYZ", ""),
    ("", "nonexistentdomain.com"),
)


class ClientState(Enum):
    """Client session states"""

    INITIAL = "Initial"
    WAITING_FOR_WELCOME = "WaitingForWelcome"
    SENDING_DNS_LOOKUP = "SendingDNSLookup"
    WAITING_FOR_DNS_LOOKUP_REPLY = "WaitingForDNSLookupReply"
    SENDING_ACK = "SendingAck"
    WAITING_FOR_END = "WaitingForEnd"
    TERMINATED = "Terminated"


@dataclass
class ClientContext:
    """Mutable state of a client session"""

    server_endpoint: Address
    state: ClientState = ClientState.INITIAL
    next_msg_id: int = 1
    lookup_index: int = 0
    pending_lookup_id: Optional[int] = None
    received: Optional[Envelope] = None
    received_from: Optional[Address] = None
    failure: Optional[ProtocolError] = None
    # DNSLookupReply or Error message received for each lookup, in order
    results: List[Message] = field(default_factory=list)
    sent_ids: List[int] = field(default_factory=list)
    received_ids: List[int] = field(default_factory=list)

    def allocate_msg_id(self) -> int:
        msg_id = self.next_msg_id
        self.next_msg_id += 1
        return msg_id


class ClientSession:
    """Client side of the session protocol"""

    def __init__(
        self,
        endpoint,
        server_endpoint: Address,
        lookups: Sequence[Tuple[str, str]] = LOOKUP_TEST_CASES,
    ):
        """Initialize client session.

        Args:
            endpoint: Open transport endpoint with send() and receive()
            server_endpoint: Server address as (host, port)
            lookups: (record type, name) pairs to look up, in order
        """
        self.endpoint = endpoint
        self.lookups = tuple(lookups)
        self.context = ClientContext(server_endpoint=tuple(server_endpoint))
        self.log = ProtocolLogger("client")

        self._handlers: Dict[ClientState, Callable[[], None]] = {
            ClientState.INITIAL: self._handle_initial,
            ClientState.WAITING_FOR_WELCOME: self._handle_waiting_for_welcome,
            ClientState.SENDING_DNS_LOOKUP: self._handle_sending_dns_lookup,
            ClientState.WAITING_FOR_DNS_LOOKUP_REPLY: self._handle_waiting_for_reply,
            ClientState.SENDING_ACK: self._handle_sending_ack,
            ClientState.WAITING_FOR_END: self._handle_waiting_for_end,
        }

    @property
    def state(self) -> ClientState:
        return self.context.state

    def run(self) -> ClientContext:
        """Run the session until it terminates.

        Protocol and transport errors end the session; the error is kept in
        the context's failure field.
        """
        try:
            while self.context.state is not ClientState.TERMINATED:
                self.step()
        except ProtocolError as e:
            self.context.failure = e
            log_exception(self.log.logger, "Client session failed", e)
            self._transition(ClientState.TERMINATED)

        if self.context.failure is None:
            self.log.logger.info("Client terminating", lookups=self.context.lookup_index)
        return self.context

    def step(self) -> ClientState:
        """Run the handler of the current state once"""
        handler = self._handlers.get(self.context.state)
        if handler is not None:
            handler()
        return self.context.state

    def _transition(self, new_state: ClientState) -> None:
        old_state = self.context.state
        self.context.state = new_state
        self.log.state_transition(old_state, new_state)

    def _send(self, message: Message) -> None:
        self.log.message_sent(message, self.context.server_endpoint)
        self.endpoint.send(encode(message), self.context.server_endpoint)
        self.context.sent_ids.append(message.msg_id)

    def _receive(self) -> Optional[Envelope]:
        """Receive one envelope; None if the datagram is not a valid envelope.

        Content is left uninterpreted; only the states that use a payload
        decode it.
        """
        data, addr = self.endpoint.receive()
        self.context.received_from = addr

        try:
            envelope = decode_envelope(data)
        except MalformedMessage as e:
            self.log.logger.warning("malformed_datagram", error=str(e), size=len(data))
            self.context.received = None
            return None

        self.context.received_ids.append(envelope.msg_id)
        self.context.received = envelope
        self.log.message_received(envelope, addr)
        return envelope

    def _reject(
        self, expected: Sequence[MessageType], envelope: Optional[Envelope]
    ) -> UnexpectedMessageType:
        received = envelope.msg_type if envelope is not None else "malformed datagram"
        error = UnexpectedMessageType(self.context.state.value, expected, received)
        self.log.unexpected_message(error)
        return error

    def _handle_initial(self) -> None:
        hello = Message(
            self.context.allocate_msg_id(), MessageType.HELLO, HELLO_TEXT
        )
        self._send(hello)
        self._transition(ClientState.WAITING_FOR_WELCOME)

    def _handle_waiting_for_welcome(self) -> None:
        envelope = self._receive()

        if envelope is not None and envelope.msg_type is MessageType.WELCOME:
            self._transition(ClientState.SENDING_DNS_LOOKUP)
            return

        self.context.failure = self._reject([MessageType.WELCOME], envelope)
        self.log.logger.error("Shutting down")
        self._transition(ClientState.TERMINATED)

    def _handle_sending_dns_lookup(self) -> None:
        if self.context.lookup_index >= len(self.lookups):
            self.log.logger.info("All DNS lookup test cases completed")
            self._transition(ClientState.WAITING_FOR_END)
            return

        record_type, name = self.lookups[self.context.lookup_index]
        self.log.logger.info(
            "Sending DNS lookup",
            number=self.context.lookup_index + 1,
            total=len(self.lookups),
            record_type=record_type,
            name=name,
        )

        lookup = create_lookup(self.context.allocate_msg_id(), record_type, name)
        self.context.pending_lookup_id = lookup.msg_id
        self._send(lookup)
        self._transition(ClientState.WAITING_FOR_DNS_LOOKUP_REPLY)

    def _handle_waiting_for_reply(self) -> None:
        envelope = self._receive()
        msg_type = envelope.msg_type if envelope is not None else None

        if msg_type is MessageType.DNS_LOOKUP_REPLY:
            # An undecodable record raises InvalidPayloadShape and ends the session
            reply = decode_payload(envelope)
            self.log.dns_record(reply.record)
            self.context.results.append(reply)
            self._transition(ClientState.SENDING_ACK)
        elif msg_type is MessageType.ERROR:
            self.context.results.append(self._error_message(envelope))
            self._transition(ClientState.SENDING_ACK)
        elif msg_type is MessageType.END:
            self._transition(ClientState.TERMINATED)
        else:
            self._reject(
                [MessageType.DNS_LOOKUP_REPLY, MessageType.ERROR, MessageType.END],
                envelope,
            )

    def _error_message(self, envelope: Envelope) -> Message:
        try:
            return decode_payload(envelope)
        except InvalidPayloadShape as e:
            self.log.logger.warning("Error message without text", error=str(e))
            return Message(envelope.msg_id, MessageType.ERROR, None)

    def _handle_sending_ack(self) -> None:
        ack = create_ack(self.context.allocate_msg_id(), self.context.pending_lookup_id)
        self._send(ack)

        self.context.lookup_index += 1
        self._transition(ClientState.SENDING_DNS_LOOKUP)

    def _handle_waiting_for_end(self) -> None:
        self.log.logger.info("Waiting for End message from server")
        envelope = self._receive()

        if envelope is not None and envelope.msg_type is MessageType.END:
            self._transition(ClientState.TERMINATED)
        else:
            self._reject([MessageType.END], envelope)
