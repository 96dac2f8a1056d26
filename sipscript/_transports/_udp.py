"""
UDP connection for scripted calls.

UDP is connectionless and unreliable; calls on a UDP connection retransmit
their requests until the next message arrives.
"""

from __future__ import annotations

import socket
import threading
from typing import Optional

from .._types import (
    TransportAddress,
    TransportConfig,
    TransportError,
    WriteError,
)
from .._utils import logger
from ._base import BaseConnection


class UDPConnection(BaseConnection):
    """
    UDP connection bound to one local port.

    A daemon reader thread receives datagrams and dispatches them to the
    calls they belong to.
    """

    # How often the reader wakes up to notice close()
    _READ_INTERVAL = 0.2

    def __init__(self, config: Optional[TransportConfig] = None) -> None:
        """
        Initialize UDP connection.

        Args:
            config: Transport configuration (local_port 0 picks a free port)
        """
        super().__init__(config)
        self._socket: Optional[socket.socket] = None
        self._initialize_socket()

        self._reader = threading.Thread(
            target=self._read_loop, name=f"udp-reader-{self.local_port}", daemon=True
        )
        self._reader.start()

    def _initialize_socket(self) -> None:
        """Create and bind UDP socket."""
        try:
            self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._socket.settimeout(self._READ_INTERVAL)
            self._socket.bind((self.config.local_host, self.config.local_port))

            # Update config with actual bound port (in case port was 0)
            self.config.local_port = self._socket.getsockname()[1]

        except OSError as e:
            raise TransportError(f"Failed to initialize UDP socket: {e}") from e

    @property
    def transport(self) -> str:
        return "UDP"

    def send_msg(self, data: bytes | str, source: Optional[TransportAddress]) -> None:
        """
        Send a datagram.

        Raises:
            WriteError: If send fails
        """
        if self._socket is None or self._closed:
            raise TransportError("Connection is closed")
        if source is None:
            raise WriteError("No destination to send to")

        if isinstance(data, str):
            data = data.encode("utf-8")

        try:
            sent = self._socket.sendto(data, (source.host, source.port))
            if sent != len(data):
                raise WriteError(f"Incomplete send: sent {sent} of {len(data)} bytes")
        except OSError as e:
            raise WriteError(f"Failed to send UDP datagram: {e}") from e

    def add_sock(self, sock: socket.socket) -> None:
        """UDP has a single socket; nothing to add."""
        logger.debug("add_sock() ignored on a UDP connection")

    def _read_loop(self) -> None:
        sock = self._socket
        while not self._closed:
            try:
                data, addr = sock.recvfrom(self.config.buffer_size)
            except socket.timeout:
                continue
            except OSError as e:
                if self._closed:
                    return
                logger.error(f"Failed to receive UDP datagram: {e}")
                return

            self.dispatch(data, TransportAddress(host=addr[0], port=addr[1], protocol="UDP"))

    def close(self) -> None:
        """Close UDP socket."""
        if self._socket and not self._closed:
            self._closed = True
            self._socket.close()
            self._socket = None
