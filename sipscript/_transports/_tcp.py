"""
TCP connection for scripted calls.

TCP is reliable and connection-oriented: calls on a TCP connection never
retransmit. Messages are framed on the stream by their Content-Length header.
"""

from __future__ import annotations

import re
import selectors
import socket
import threading
from typing import Dict, Optional, Tuple

from .._types import (
    ConnectionError,
    TransportAddress,
    TransportConfig,
    TransportError,
    WriteError,
)
from .._utils import logger
from ._base import BaseConnection

_CONTENT_LENGTH = re.compile(rb"^(?:content-length|l)[ \t]*:[ \t]*(\d+)", re.I | re.M)


def extract_messages(buffer: bytes) -> Tuple[list[bytes], bytes]:
    """
    Split complete SIP messages off the front of a stream buffer.

    Leading CRLF keep-alives are skipped. A message without Content-Length
    is taken to have no body.

    Returns:
        (complete messages, unconsumed remainder)
    """
    messages = []
    while True:
        buffer = buffer.lstrip(b"\r\n")
        end = buffer.find(b"\r\n\r\n")
        if end < 0:
            return messages, buffer

        head = buffer[:end]
        match = _CONTENT_LENGTH.search(head)
        length = int(match.group(1)) if match else 0

        total = end + 4 + length
        if len(buffer) < total:
            return messages, buffer

        messages.append(buffer[:total])
        buffer = buffer[total:]


class TCPConnection(BaseConnection):
    """
    TCP connection with a listening socket.

    Accepted and outbound sockets are watched by one selector on a daemon
    reader thread. Messages are tagged with the socket they arrived on, so
    replies go back over the same connection.
    """

    _READ_INTERVAL = 0.2

    def __init__(self, config: Optional[TransportConfig] = None) -> None:
        super().__init__(config)
        self._selector = selectors.DefaultSelector()
        self._sock_lock = threading.Lock()
        self._buffers: Dict[socket.socket, bytes] = {}
        self._listener: Optional[socket.socket] = None
        self._initialize_socket()

        self._reader = threading.Thread(
            target=self._read_loop, name=f"tcp-reader-{self.local_port}", daemon=True
        )
        self._reader.start()

    def _initialize_socket(self) -> None:
        """Create, bind and listen on the TCP socket."""
        try:
            self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self._listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._listener.bind((self.config.local_host, self.config.local_port))
            self.config.local_port = self._listener.getsockname()[1]
            self._listener.listen(5)
            self._listener.setblocking(False)
            self._selector.register(self._listener, selectors.EVENT_READ, data=None)

        except OSError as e:
            raise TransportError(f"Failed to initialize TCP socket: {e}") from e

    @property
    def transport(self) -> str:
        return "TCP"

    def connect(self, destination: TransportAddress) -> socket.socket:
        """
        Open a connection to ``destination`` and start receiving on it.

        Raises:
            ConnectionError: If connection fails
        """
        try:
            sock = socket.create_connection(
                (destination.host, destination.port),
                timeout=self.config.connect_timeout,
            )
        except OSError as e:
            raise ConnectionError(
                f"Failed to connect to {destination.host}:{destination.port}: {e}"
            ) from e
        self.add_sock(sock)
        return sock

    def send_msg(self, data: bytes | str, source: Optional[TransportAddress]) -> None:
        """
        Send a message over the source's socket, connecting first if needed.

        Raises:
            WriteError: If send fails
        """
        if self._closed:
            raise TransportError("Connection is closed")
        if source is None:
            raise WriteError("No destination to send to")

        if isinstance(data, str):
            data = data.encode("utf-8")

        if source.sock is None:
            source.sock = self.connect(source)

        try:
            source.sock.sendall(data)
        except OSError as e:
            raise WriteError(f"Failed to send over TCP to {source}: {e}") from e

    def add_sock(self, sock: socket.socket) -> None:
        """Start receiving messages on a connected socket."""
        with self._sock_lock:
            if sock in self._buffers:
                return
            sock.setblocking(True)
            sock.settimeout(self.config.connect_timeout)
            self._buffers[sock] = b""
            self._selector.register(sock, selectors.EVENT_READ, data=sock)

    def _drop(self, sock: socket.socket) -> None:
        with self._sock_lock:
            self._buffers.pop(sock, None)
            try:
                self._selector.unregister(sock)
            except (KeyError, ValueError, OSError):
                pass
        sock.close()

    def _read_loop(self) -> None:
        while not self._closed:
            try:
                events = self._selector.select(timeout=self._READ_INTERVAL)
            except (OSError, ValueError):
                if self._closed:
                    return
                raise

            for key, _ in events:
                if key.data is None:
                    self._accept()
                else:
                    self._read(key.data)

    def _accept(self) -> None:
        listener = self._listener
        if listener is None:
            return
        try:
            sock, addr = listener.accept()
        except (BlockingIOError, OSError):
            return
        logger.debug(f"Accepted TCP connection from {addr[0]}:{addr[1]}")
        self.add_sock(sock)

    def _read(self, sock: socket.socket) -> None:
        try:
            chunk = sock.recv(self.config.buffer_size)
        except OSError as e:
            if not self._closed:
                logger.warning(f"TCP read failed, closing socket: {e}")
            self._drop(sock)
            return

        if not chunk:
            self._drop(sock)
            return

        with self._sock_lock:
            messages, rest = extract_messages(self._buffers.get(sock, b"") + chunk)
            self._buffers[sock] = rest

        try:
            host, port = sock.getpeername()[:2]
        except OSError:
            host, port = "", 0
        for data in messages:
            self.dispatch(data, TransportAddress(host=host, port=port, protocol="TCP", sock=sock))

    def close(self) -> None:
        """Close the listener and every connection."""
        if self._closed:
            return
        self._closed = True
        with self._sock_lock:
            socks = list(self._buffers)
            self._buffers.clear()
        for sock in socks:
            sock.close()
        if self._listener is not None:
            self._listener.close()
            self._listener = None
        self._selector.close()
