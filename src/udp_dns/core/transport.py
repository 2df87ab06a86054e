"""
Datagram Transport

Blocking send/receive wrapper over a UDP socket. One datagram carries one
message; there is no fragmentation or reassembly.
"""

import logging
import socket
from typing import Optional, Tuple

from .errors import TransportFailure

logger = logging.getLogger(__name__)

Address = Tuple[str, int]

MIN_BUFFER_SIZE = 1024


class UDPEndpoint:
    """Bound UDP socket used by a single session state machine"""

    def __init__(
        self,
        bind_address: str,
        port: int,
        buffer_size: int = MIN_BUFFER_SIZE,
        timeout: Optional[float] = None,
    ):
        """Initialize endpoint.

        Args:
            bind_address: Local address to bind to
            port: Local port (0 picks an ephemeral port)
            buffer_size: Receive buffer size in bytes
            timeout: Receive timeout in seconds, None blocks forever
        """
        self.bind_address = bind_address
        self.port = port
        self.buffer_size = max(buffer_size, MIN_BUFFER_SIZE)
        self.timeout = timeout
        self._sock: Optional[socket.socket] = None

    @property
    def local_address(self) -> Address:
        """Address the socket is bound to"""
        if self._sock is None:
            raise TransportFailure("Endpoint is not open")
        return self._sock.getsockname()[:2]

    def open(self) -> "UDPEndpoint":
        """Create and bind the socket"""
        if self._sock is not None:
            return self

        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            sock.bind((self.bind_address, self.port))
            sock.settimeout(self.timeout)
        except OSError as e:
            raise TransportFailure(
                f"Cannot bind UDP socket to {self.bind_address}:{self.port}: {e}"
            ) from e

        self._sock = sock
        logger.debug(f"UDP endpoint bound to {self.local_address}")
        return self

    def close(self) -> None:
        """Close the socket"""
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def send(self, data: bytes, addr: Address) -> None:
        """Send one datagram"""
        if self._sock is None:
            raise TransportFailure("Endpoint is not open")

        try:
            self._sock.sendto(data, addr)
        except OSError as e:
            raise TransportFailure(f"Send to {addr[0]}:{addr[1]} failed: {e}") from e

    def receive(self) -> Tuple[bytes, Address]:
        """Block until one datagram arrives"""
        if self._sock is None:
            raise TransportFailure("Endpoint is not open")

        try:
            data, addr = self._sock.recvfrom(self.buffer_size)
        except socket.timeout as e:
            raise TransportFailure(
                f"No datagram received within {self.timeout} seconds"
            ) from e
        except OSError as e:
            raise TransportFailure(f"Receive failed: {e}") from e

        return data, addr[:2]

    def __enter__(self) -> "UDPEndpoint":
        return self.open()

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()
