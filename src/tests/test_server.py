"""
Server Session Tests

Drives the server state machine against an in-memory endpoint with scripted
client datagrams.
"""

from unittest.mock import Mock

import pytest

from udp_dns.core.errors import LookupFailure, TransportFailure
from udp_dns.core.message import (
    DNSRecord,
    Message,
    MessageType,
    create_ack,
    create_lookup,
)
from udp_dns.core.records import RecordStore
from udp_dns.core.server import END_TEXT, WELCOME_TEXT, ServerSession, ServerState

from conftest import CLIENT_ADDR, SAMPLE_RECORDS, FakeEndpoint

OTHER_CLIENT = ("127.0.0.1", 40002)


def hello(msg_id=1):
    return Message(msg_id, MessageType.HELLO, "Hello from client")


def feed_client_session(endpoint, lookups, addr=CLIENT_ADDR):
    """Queue a client's Hello, lookups and acks"""
    endpoint.feed(hello(), addr)
    msg_id = 2
    for record_type, name in lookups:
        endpoint.feed(create_lookup(msg_id, record_type, name), addr)
        endpoint.feed(create_ack(msg_id + 1, msg_id), addr)
        msg_id += 2


FIXED_LOOKUPS = [
    ("A", "www.outlook.com"),
    ("A", "mail.example.com"),
    ("XYZ", ""),
    ("", "nonexistentdomain.com"),
]


@pytest.fixture
def endpoint():
    return FakeEndpoint(default_peer=CLIENT_ADDR)


@pytest.fixture
def server(endpoint, store):
    return ServerSession(endpoint, store)


def advance_to_lookup(server, endpoint):
    """Step through Waiting, Hello and Welcome"""
    endpoint.feed(hello())
    server.step()
    server.step()
    server.step()
    assert server.state is ServerState.RECEIVING_DNS_LOOKUP


class TestServerSession:
    """Test complete server sessions"""

    def test_full_session(self, server, endpoint):
        """Test welcome, two replies, two errors and End"""
        feed_client_session(endpoint, FIXED_LOOKUPS)

        context = server.run(max_sessions=1)

        assert context.failure is None
        assert context.sessions_completed == 1
        assert context.state is ServerState.WAITING

        sent = endpoint.sent_messages()
        assert [m.msg_type for m in sent] == [
            MessageType.WELCOME,
            MessageType.DNS_LOOKUP_REPLY,
            MessageType.DNS_LOOKUP_REPLY,
            MessageType.ERROR,
            MessageType.ERROR,
            MessageType.END,
        ]
        assert sent[0] == Message(1, MessageType.WELCOME, WELCOME_TEXT)
        assert sent[-1] == Message(2, MessageType.END, END_TEXT)
        assert all(addr == CLIENT_ADDR for addr in endpoint.sent_addresses())

    def test_answers_carry_lookup_ids(self, server, endpoint):
        """Test replies and errors reuse the id of the lookup they answer"""
        feed_client_session(endpoint, FIXED_LOOKUPS)

        server.run(max_sessions=1)

        answers = endpoint.sent_messages()[1:-1]
        assert [m.msg_id for m in answers] == [2, 4, 6, 8]

    @pytest.mark.parametrize("record", SAMPLE_RECORDS[:3] + SAMPLE_RECORDS[4:])
    def test_stored_records_are_returned(self, endpoint, record):
        """Test every stored pair is answered with the stored record"""
        server = ServerSession(endpoint, RecordStore(SAMPLE_RECORDS), lookups_per_session=1)
        feed_client_session(endpoint, [record.key])

        server.run(max_sessions=1)

        reply = endpoint.sent_messages()[1]
        assert reply.msg_type is MessageType.DNS_LOOKUP_REPLY
        assert reply.record == record

    @pytest.mark.parametrize(
        "query",
        [
            ("A", "nonexistentdomain.com"),
            ("AAAA", "www.outlook.com"),
            ("a", "www.outlook.com"),
            ("XYZ", ""),
            ("", "www.outlook.com"),
            ("", ""),
        ],
    )
    def test_missing_or_incomplete_queries_get_error(self, endpoint, store, query):
        """Test absent and incomplete queries are never answered with a record"""
        server = ServerSession(endpoint, store, lookups_per_session=1)
        feed_client_session(endpoint, [query])

        server.run(max_sessions=1)

        answer = endpoint.sent_messages()[1]
        assert answer.msg_type is MessageType.ERROR
        assert isinstance(answer.content, str)

    def test_consecutive_sessions(self, server, endpoint):
        """Test two clients are served one after the other"""
        feed_client_session(endpoint, FIXED_LOOKUPS, CLIENT_ADDR)
        feed_client_session(endpoint, FIXED_LOOKUPS, OTHER_CLIENT)

        context = server.run(max_sessions=2)

        assert context.sessions_completed == 2
        addresses = endpoint.sent_addresses()
        assert addresses[:6] == [CLIENT_ADDR] * 6
        assert addresses[6:] == [OTHER_CLIENT] * 6

        ends = [m for m in endpoint.sent_messages() if m.msg_type is MessageType.END]
        welcomes = [
            m for m in endpoint.sent_messages() if m.msg_type is MessageType.WELCOME
        ]
        assert [m.msg_id for m in welcomes] == [1, 3]
        assert [m.msg_id for m in ends] == [2, 4]


class TestServerReset:
    """Test per-session state is cleared between clients"""

    def test_context_reset_after_end(self, server, endpoint):
        """Test the next session starts from a clean context"""
        feed_client_session(endpoint, FIXED_LOOKUPS)
        server.run(max_sessions=1)
        assert server.context.lookup_count == 4

        endpoint.feed(hello(), OTHER_CLIENT)
        assert server.step() is ServerState.RECEIVING_HELLO

        context = server.context
        assert context.lookup_count == 0
        assert context.lookup_record is None
        assert context.found_record is None
        assert context.lookup_failure is None
        assert context.pending_lookup_id is None
        assert context.client_endpoint is None
        assert context.received is None
        assert context.next_msg_id == 3

        server.step()
        assert context.client_endpoint == OTHER_CLIENT


class TestServerTransitions:
    """Test individual state handlers"""

    def test_non_hello_returns_to_waiting(self, server, endpoint):
        """Test a session is not opened by anything but Hello"""
        endpoint.feed(create_lookup(2, "A", "www.outlook.com"))

        server.step()
        assert server.step() is ServerState.WAITING
        assert endpoint.sent == []

    def test_malformed_hello_returns_to_waiting(self, server, endpoint):
        """Test garbage instead of Hello drops the would-be session"""
        endpoint.feed(b"\x00\x01garbage")

        server.step()
        assert server.step() is ServerState.WAITING
        assert server.context.failure is None

    def test_deeply_nested_datagram_is_survived(self, server, endpoint):
        """Test pathological JSON is dropped and the next client is served"""
        endpoint.feed(b"[" * 1024)
        endpoint.feed(hello(), OTHER_CLIENT)

        server.step()
        assert server.step() is ServerState.WAITING

        server.step()
        server.step()
        assert server.step() is ServerState.RECEIVING_DNS_LOOKUP
        assert endpoint.sent_messages()[0].msg_type is MessageType.WELCOME
        assert endpoint.sent_addresses() == [OTHER_CLIENT]

    def test_deeply_nested_lookup_is_ignored(self, server, endpoint):
        """Test pathological JSON during a session leaves the state unchanged"""
        advance_to_lookup(server, endpoint)
        endpoint.feed(b'{"a":' * 200)

        context = server.run(max_sessions=1)

        assert isinstance(context.failure, TransportFailure)
        assert context.state is ServerState.RECEIVING_DNS_LOOKUP
        assert context.lookup_count == 0

    def test_unexpected_message_while_receiving_lookup(self, server, endpoint):
        """Test noise does not leave the lookup-receiving state"""
        advance_to_lookup(server, endpoint)
        endpoint.feed(create_ack(9, 2))
        endpoint.feed(b"nope")

        assert server.step() is ServerState.RECEIVING_DNS_LOOKUP
        assert server.step() is ServerState.RECEIVING_DNS_LOOKUP
        assert server.context.lookup_count == 0

    def test_invalid_lookup_payload_sends_error(self, server, endpoint):
        """Test an undecodable lookup payload becomes an Error reply"""
        advance_to_lookup(server, endpoint)
        endpoint.feed(b'{"MsgId":2,"MsgType":"DNSLookup","Content":"www.outlook.com"}')

        assert server.step() is ServerState.PROCESSING_DNS_LOOKUP
        assert server.step() is ServerState.SENDING_ERROR
        assert server.context.lookup_failure is LookupFailure.INVALID_PAYLOAD
        assert server.step() is ServerState.RECEIVING_ACK

        error = endpoint.sent_messages()[-1]
        assert error.msg_type is MessageType.ERROR
        assert error.msg_id == 2

    def test_incomplete_lookup_skips_store(self, endpoint):
        """Test empty type or name is rejected before querying the store"""
        store = Mock(spec=RecordStore)
        server = ServerSession(endpoint, store)
        advance_to_lookup(server, endpoint)
        endpoint.feed(create_lookup(2, "XYZ", ""))

        server.step()
        assert server.step() is ServerState.SENDING_ERROR
        assert server.context.lookup_failure is LookupFailure.INCOMPLETE_REQUEST
        store.lookup.assert_not_called()

    def test_not_found_lookup(self, server, endpoint):
        """Test an unknown pair records the not-found outcome"""
        advance_to_lookup(server, endpoint)
        endpoint.feed(create_lookup(2, "A", "nonexistentdomain.com"))

        server.step()
        server.step()
        assert server.context.lookup_failure is LookupFailure.RECORD_NOT_FOUND
        server.step()

        error = endpoint.sent_messages()[-1]
        assert error.content == (
            "DNS record not found for type A and name nonexistentdomain.com"
        )

    def test_found_lookup(self, server, endpoint):
        """Test a stored pair moves to sending the reply"""
        advance_to_lookup(server, endpoint)
        endpoint.feed(create_lookup(2, "A", "mail.example.com"))

        server.step()
        assert server.step() is ServerState.SENDING_DNS_LOOKUP_REPLY
        assert server.context.found_record == DNSRecord(
            "A", "mail.example.com", "192.168.1.20", 3600
        )
        assert server.context.lookup_record == DNSRecord("A", "mail.example.com")

    def test_ack_loops_until_threshold(self, server, endpoint):
        """Test acks return to lookup receiving until four lookups are served"""
        advance_to_lookup(server, endpoint)

        for number in range(1, 5):
            msg_id = number * 2
            endpoint.feed(create_lookup(msg_id, "A", "www.outlook.com"))
            endpoint.feed(create_ack(msg_id + 1, msg_id))
            server.step()
            server.step()
            server.step()
            state = server.step()

            assert server.context.lookup_count == number
            if number < 4:
                assert state is ServerState.RECEIVING_DNS_LOOKUP
            else:
                assert state is ServerState.SENDING_END

    def test_unexpected_message_while_receiving_ack(self, server, endpoint):
        """Test the server keeps waiting for an Ack"""
        advance_to_lookup(server, endpoint)
        endpoint.feed(create_lookup(2, "A", "www.outlook.com"))
        server.step()
        server.step()
        server.step()

        endpoint.feed(create_lookup(3, "A", "www.outlook.com"))
        assert server.step() is ServerState.RECEIVING_ACK
        assert server.context.lookup_count == 1

    def test_mismatched_ack_is_accepted(self, server, endpoint):
        """Test an Ack naming another id still advances the session"""
        advance_to_lookup(server, endpoint)
        endpoint.feed(create_lookup(2, "A", "www.outlook.com"))
        endpoint.feed(create_ack(3, 99))
        server.step()
        server.step()
        server.step()

        assert server.step() is ServerState.RECEIVING_DNS_LOOKUP


class TestServerSenderHandling:
    """Test how datagrams from other senders are treated"""

    def test_trusts_any_sender_by_default(self, server, endpoint):
        """Test a lookup from another address continues the session"""
        advance_to_lookup(server, endpoint)
        endpoint.feed(create_lookup(2, "A", "www.outlook.com"), OTHER_CLIENT)

        server.step()
        server.step()
        server.step()

        assert endpoint.sent_addresses()[-1] == CLIENT_ADDR

    def test_bind_to_client_ignores_other_senders(self, endpoint, store):
        """Test bound sessions skip datagrams from other addresses"""
        server = ServerSession(endpoint, store, bind_to_client=True)
        advance_to_lookup(server, endpoint)
        endpoint.feed(create_lookup(2, "A", "nonexistentdomain.com"), OTHER_CLIENT)
        endpoint.feed(create_lookup(4, "A", "www.outlook.com"), CLIENT_ADDR)

        server.step()

        assert server.context.pending_lookup_id == 4
        assert not endpoint.inbound


class TestServerFailures:
    """Test fatal errors"""

    def test_transport_failure_stops_server(self, server, endpoint):
        """Test the loop ends on a socket failure"""
        context = server.run()

        assert isinstance(context.failure, TransportFailure)
        assert context.state is ServerState.RECEIVING_HELLO

    def test_transport_failure_mid_session(self, server, endpoint):
        """Test a client that stops answering stops the server"""
        endpoint.feed(hello())
        endpoint.feed(create_lookup(2, "A", "www.outlook.com"))

        context = server.run()

        assert isinstance(context.failure, TransportFailure)
        assert context.state is ServerState.RECEIVING_ACK
        assert context.sessions_completed == 0
