"""Shared test helpers for the session protocol tests."""

from collections import deque
from pathlib import Path

import pytest

from udp_dns.core.errors import TransportFailure
from udp_dns.core.message import DNSRecord, Message, decode, encode
from udp_dns.core.records import RecordStore

CLIENT_ADDR = ("127.0.0.1", 40001)
SERVER_ADDR = ("127.0.0.1", 40000)

SAMPLE_RECORDS = [
    DNSRecord("A", "www.outlook.com", "192.168.1.10", 3600),
    DNSRecord("A", "mail.example.com", "192.168.1.20", 3600),
    DNSRecord("MX", "example.com", "mail.example.com", 3600, 10),
    DNSRecord("MX", "example.com", "backup.example.com", 3600, 20),
    DNSRecord("CNAME", "mail.outlook.com", "www.outlook.com", 1800),
]


class FakeEndpoint:
    """In-memory endpoint: queued inbound datagrams, recorded outbound ones.

    Receiving from an empty queue raises TransportFailure, which stands in for
    a peer that never answers.
    """

    def __init__(self, default_peer=SERVER_ADDR):
        self.default_peer = default_peer
        self.inbound = deque()
        self.sent = []

    def feed(self, message, addr=None):
        data = encode(message) if isinstance(message, Message) else message
        self.inbound.append((data, addr or self.default_peer))

    def send(self, data, addr):
        self.sent.append((data, addr))

    def receive(self):
        if not self.inbound:
            raise TransportFailure("No datagram queued")
        return self.inbound.popleft()

    def sent_messages(self):
        return [decode(data) for data, _ in self.sent]

    def sent_addresses(self):
        return [addr for _, addr in self.sent]


@pytest.fixture
def store():
    return RecordStore(SAMPLE_RECORDS)


@pytest.fixture
def project_root():
    return Path(__file__).parent.parent.parent
