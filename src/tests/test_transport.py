"""Tests for the UDP endpoint wrapper."""

import socket

import pytest

from udp_dns.core.errors import TransportFailure
from udp_dns.core.transport import MIN_BUFFER_SIZE, UDPEndpoint


class TestUDPEndpoint:
    """Test the blocking UDP endpoint"""

    def test_send_and_receive(self):
        """Test a datagram crosses between two endpoints"""
        with UDPEndpoint("127.0.0.1", 0, timeout=2.0) as a, UDPEndpoint(
            "127.0.0.1", 0, timeout=2.0
        ) as b:
            a.send(b"ping", b.local_address)
            data, addr = b.receive()

        assert data == b"ping"
        assert addr == a.local_address

    def test_receive_timeout(self):
        """Test an expired receive raises TransportFailure"""
        with UDPEndpoint("127.0.0.1", 0, timeout=0.05) as endpoint:
            with pytest.raises(TransportFailure):
                endpoint.receive()

    def test_unopened_endpoint(self):
        """Test using a closed endpoint raises TransportFailure"""
        endpoint = UDPEndpoint("127.0.0.1", 0)

        with pytest.raises(TransportFailure):
            endpoint.receive()
        with pytest.raises(TransportFailure):
            endpoint.send(b"x", ("127.0.0.1", 9))
        with pytest.raises(TransportFailure):
            endpoint.local_address

    def test_bind_conflict(self):
        """Test binding a taken port raises TransportFailure"""
        taken = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        taken.bind(("127.0.0.1", 0))
        try:
            port = taken.getsockname()[1]
            with pytest.raises(TransportFailure):
                UDPEndpoint("127.0.0.1", port).open()
        finally:
            taken.close()

    def test_buffer_size_minimum(self):
        """Test the receive buffer never drops below the minimum"""
        assert UDPEndpoint("127.0.0.1", 0, buffer_size=16).buffer_size == MIN_BUFFER_SIZE
        assert UDPEndpoint("127.0.0.1", 0, buffer_size=4096).buffer_size == 4096

    def test_close_is_idempotent(self):
        """Test closing twice is harmless"""
        endpoint = UDPEndpoint("127.0.0.1", 0).open()
        endpoint.close()
        endpoint.close()

        with pytest.raises(TransportFailure):
            endpoint.receive()
