"""
Server Session State Machine

Serves one client session at a time:
- Waits for a Hello and answers with Welcome
- Answers each DNS lookup from the record store with a DNSLookupReply, or
  with an Error when the request is incomplete, malformed or not found
- Waits for an Ack after every answer
- Sends End once the configured number of lookups has been served, resets
  its per-session state and waits for the next client

The server trusts whichever datagram arrives next as part of the current
session unless bind_to_client is enabled.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from ..dns_logging import ProtocolLogger, format_address, log_exception
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
    decode_envelope,
    decode_payload,
    encode,
)
from .records import RecordStore
from .transport import Address

WELCOME_TEXT = "Welcome from server"
END_TEXT = "End of communication"

DEFAULT_LOOKUPS_PER_SESSION = 4


class ServerState(Enum):
    """Server session states"""

    WAITING = "Waiting"
    RECEIVING_HELLO = "ReceivingHello"
    SENDING_WELCOME = "SendingWelcome"
    RECEIVING_DNS_LOOKUP = "ReceivingDNSLookup"
    PROCESSING_DNS_LOOKUP = "ProcessingDNSLookup"
    SENDING_DNS_LOOKUP_REPLY = "SendingDNSLookupReply"
    SENDING_ERROR = "SendingError"
    RECEIVING_ACK = "ReceivingAck"
    SENDING_END = "SendingEnd"


@dataclass
class ServerContext:
    """Mutable state of the server.

    Everything except the message id counter and the completed session count
    is per-session and cleared by reset().
    """

    state: ServerState = ServerState.WAITING
    local_endpoint: Optional[Address] = None
    client_endpoint: Optional[Address] = None
    received: Optional[Envelope] = None
    lookup_record: Optional[DNSRecord] = None
    found_record: Optional[DNSRecord] = None
    lookup_failure: Optional[LookupFailure] = None
    pending_lookup_id: Optional[int] = None
    lookup_count: int = 0
    next_msg_id: int = 1
    sessions_completed: int = 0
    failure: Optional[ProtocolError] = None

    def allocate_msg_id(self) -> int:
        msg_id = self.next_msg_id
        self.next_msg_id += 1
        return msg_id

    def clear_lookup(self) -> None:
        self.lookup_record = None
        self.found_record = None
        self.lookup_failure = None

    def reset(self) -> None:
        """Clear per-session state before accepting the next client"""
        self.state = ServerState.WAITING
        self.client_endpoint = None
        self.received = None
        self.pending_lookup_id = None
        self.lookup_count = 0
        self.clear_lookup()


class ServerSession:
    """Server side of the session protocol"""

    def __init__(
        self,
        endpoint,
        store: RecordStore,
        lookups_per_session: int = DEFAULT_LOOKUPS_PER_SESSION,
        bind_to_client: bool = False,
    ):
        """Initialize server session.

        Args:
            endpoint: Open transport endpoint with send() and receive()
            store: Records used to answer lookups
            lookups_per_session: Lookups served before the server sends End
            bind_to_client: Ignore datagrams from other senders during a session
        """
        self.endpoint = endpoint
        self.store = store
        self.lookups_per_session = lookups_per_session
        self.bind_to_client = bind_to_client
        self.context = ServerContext()
        self.log = ProtocolLogger("server")

        self._handlers: Dict[ServerState, Callable[[], None]] = {
            ServerState.WAITING: self._handle_waiting,
            ServerState.RECEIVING_HELLO: self._handle_receiving_hello,
            ServerState.SENDING_WELCOME: self._handle_sending_welcome,
            ServerState.RECEIVING_DNS_LOOKUP: self._handle_receiving_dns_lookup,
            ServerState.PROCESSING_DNS_LOOKUP: self._handle_processing_dns_lookup,
            ServerState.SENDING_DNS_LOOKUP_REPLY: self._handle_sending_reply,
            ServerState.SENDING_ERROR: self._handle_sending_error,
            ServerState.RECEIVING_ACK: self._handle_receiving_ack,
            ServerState.SENDING_END: self._handle_sending_end,
        }

    @property
    def state(self) -> ServerState:
        return self.context.state

    def run(self, max_sessions: Optional[int] = None) -> ServerContext:
        """Serve sessions one after another.

        Runs forever unless max_sessions is given. A transport failure stops
        the server; it is logged and kept in the context's failure field.
        """
        try:
            self.context.local_endpoint = getattr(self.endpoint, "local_address", None)
            while (
                max_sessions is None
                or self.context.sessions_completed < max_sessions
            ):
                self.step()
        except TransportFailure as e:
            self.context.failure = e
            log_exception(self.log.logger, "Server stopped on transport failure", e)

        return self.context

    def step(self) -> ServerState:
        """Run the handler of the current state once"""
        self._handlers[self.context.state]()
        return self.context.state

    def _transition(self, new_state: ServerState) -> None:
        old_state = self.context.state
        self.context.state = new_state
        self.log.state_transition(old_state, new_state)

    def _send(self, message: Message) -> None:
        self.log.message_sent(message, self.context.client_endpoint)
        self.endpoint.send(encode(message), self.context.client_endpoint)

    def _receive(self) -> Optional[Envelope]:
        """Receive one envelope; None if the datagram is not a valid envelope"""
        while True:
            data, addr = self.endpoint.receive()

            if self.context.state is ServerState.RECEIVING_HELLO:
                self.context.client_endpoint = addr
            elif self.bind_to_client and addr != self.context.client_endpoint:
                self.log.logger.warning(
                    "datagram_ignored",
                    peer=format_address(addr),
                    client=format_address(self.context.client_endpoint),
                )
                continue
            break

        try:
            envelope = decode_envelope(data)
        except MalformedMessage as e:
            self.log.logger.warning(
                "malformed_datagram", error=str(e), peer=format_address(addr)
            )
            self.context.received = None
            return None

        self.context.received = envelope
        self.log.message_received(envelope, addr)
        return envelope

    def _reject(self, expected: MessageType, envelope: Optional[Envelope]) -> None:
        received = envelope.msg_type if envelope is not None else "malformed datagram"
        self.log.unexpected_message(
            UnexpectedMessageType(self.context.state.value, [expected], received)
        )

    def _handle_waiting(self) -> None:
        self.log.logger.info("Waiting for client connections")
        self.context.reset()
        self._transition(ServerState.RECEIVING_HELLO)

    def _handle_receiving_hello(self) -> None:
        envelope = self._receive()

        if envelope is not None and envelope.msg_type is MessageType.HELLO:
            self._transition(ServerState.SENDING_WELCOME)
        else:
            self._reject(MessageType.HELLO, envelope)
            self._transition(ServerState.WAITING)

    def _handle_sending_welcome(self) -> None:
        welcome = Message(
            self.context.allocate_msg_id(), MessageType.WELCOME, WELCOME_TEXT
        )
        self._send(welcome)
        self._transition(ServerState.RECEIVING_DNS_LOOKUP)

    def _handle_receiving_dns_lookup(self) -> None:
        envelope = self._receive()

        if envelope is None or envelope.msg_type is not MessageType.DNS_LOOKUP:
            self._reject(MessageType.DNS_LOOKUP, envelope)
            return

        self.context.lookup_count += 1
        self.context.pending_lookup_id = envelope.msg_id
        self.context.clear_lookup()
        self.log.logger.info("Received DNS lookup", number=self.context.lookup_count)
        self._transition(ServerState.PROCESSING_DNS_LOOKUP)

    def _handle_processing_dns_lookup(self) -> None:
        try:
            query = decode_payload(self.context.received).record
        except (MalformedMessage, InvalidPayloadShape) as e:
            self.log.logger.error("Error parsing DNS lookup data", error=str(e))
            self._fail_lookup(LookupFailure.INVALID_PAYLOAD)
            return

        self.context.lookup_record = query

        if not query.record_type or not query.name:
            self.log.logger.warning(
                "Received incomplete DNS lookup data",
                record_type=query.record_type,
                name=query.name,
            )
            self._fail_lookup(LookupFailure.INCOMPLETE_REQUEST)
            return

        self.log.logger.info(
            "Processing lookup", record_type=query.record_type, name=query.name
        )
        found = self.store.lookup(query.record_type, query.name)

        if found is None:
            self.log.logger.warning("DNS record not found")
            self._fail_lookup(LookupFailure.RECORD_NOT_FOUND)
            return

        self.context.found_record = found
        self.log.dns_record(found)
        self._transition(ServerState.SENDING_DNS_LOOKUP_REPLY)

    def _fail_lookup(self, reason: LookupFailure) -> None:
        self.context.lookup_failure = reason
        self._transition(ServerState.SENDING_ERROR)

    def _handle_sending_reply(self) -> None:
        reply = Message(
            self.context.pending_lookup_id,
            MessageType.DNS_LOOKUP_REPLY,
            self.context.found_record,
        )
        self._send(reply)
        self._transition(ServerState.RECEIVING_ACK)

    def _handle_sending_error(self) -> None:
        error = Message(
            self.context.pending_lookup_id, MessageType.ERROR, self._error_text()
        )
        self._send(error)
        self._transition(ServerState.RECEIVING_ACK)

    def _error_text(self) -> str:
        query = self.context.lookup_record
        if self.context.lookup_failure is LookupFailure.INVALID_PAYLOAD or query is None:
            return "Invalid DNS lookup request"

        if self.context.lookup_failure is LookupFailure.INCOMPLETE_REQUEST:
            return (
                f"Incomplete DNS lookup request for type {query.record_type!r} "
                f"and name {query.name!r}"
            )

        return (
            f"DNS record not found for type {query.record_type} "
            f"and name {query.name}"
        )

    def _handle_receiving_ack(self) -> None:
        envelope = self._receive()

        if envelope is None or envelope.msg_type is not MessageType.ACK:
            self._reject(MessageType.ACK, envelope)
            return

        if envelope.content != self.context.pending_lookup_id:
            self.log.logger.warning(
                "Ack does not match pending lookup",
                acked=envelope.content,
                pending=self.context.pending_lookup_id,
            )

        if self.context.lookup_count >= self.lookups_per_session:
            self.log.logger.info("All required DNS lookups completed")
            self._transition(ServerState.SENDING_END)
        else:
            self.log.logger.info(
                "Waiting for more DNS lookups",
                completed=self.context.lookup_count,
                required=self.lookups_per_session,
            )
            self._transition(ServerState.RECEIVING_DNS_LOOKUP)

    def _handle_sending_end(self) -> None:
        end = Message(self.context.allocate_msg_id(), MessageType.END, END_TEXT)
        self._send(end)

        self.context.sessions_completed += 1
        self.log.logger.info(
            "Session with client completed",
            client=format_address(self.context.client_endpoint),
            sessions=self.context.sessions_completed,
        )
        self._transition(ServerState.WAITING)
