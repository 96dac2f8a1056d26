"""
Base connection abstraction for scripted calls.

A connection owns the sockets of one local endpoint and hands every received
message to the call it belongs to, keyed by Call-ID. Messages with an unseen
Call-ID are announced as new calls; messages for calls marked dead are
dropped.

A queue lives until its call is marked dead, so a script should end every
call it receives, including ones it ignores. Only the most recent
``max_dead_calls`` ended Call-IDs are remembered.
"""

from __future__ import annotations

import abc
import queue
import socket
import threading
from collections import OrderedDict
from typing import Dict, Optional

from .._models._message import MessageParser, SIPMessage
from .._types import TimeoutError, TransportAddress, TransportConfig
from .._utils import local_ip, logger


class BaseConnection(abc.ABC):
    """
    Abstract base class for connections.

    Subclasses implement the wire side (``send_msg``, ``add_sock``, ``close``
    and the reader that feeds :meth:`dispatch`); the per-call queues live
    here.
    """

    def __init__(self, config: Optional[TransportConfig] = None) -> None:
        """
        Initialize connection with configuration.

        Args:
            config: Transport configuration. If None, uses defaults.
        """
        self.config = config or TransportConfig()
        self._closed = False

        self._lock = threading.Lock()
        self._call_queues: Dict[str, queue.Queue] = {}
        self._dead_calls: OrderedDict[str, None] = OrderedDict()
        self._new_calls: queue.Queue = queue.Queue()

    # ------------------------------------------------------------------
    # Wire side
    # ------------------------------------------------------------------

    @property
    @abc.abstractmethod
    def transport(self) -> str:
        """Return protocol name (UDP or TCP)."""
        ...

    @abc.abstractmethod
    def send_msg(self, data: bytes | str, source: Optional[TransportAddress]) -> None:
        """
        Send a rendered message.

        Args:
            data: Wire-format message
            source: Where to send it

        Raises:
            TransportError: On send failure
        """
        ...

    @abc.abstractmethod
    def add_sock(self, sock: socket.socket) -> None:
        """Start receiving messages on an already connected socket."""
        ...

    @abc.abstractmethod
    def close(self) -> None:
        """Close the connection and release resources."""
        ...

    def __enter__(self) -> BaseConnection:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def local_hostname(self) -> str:
        """Hostname advertised in Via and Contact."""
        if self.config.advertised_host:
            return self.config.advertised_host
        if self.config.local_host in ("0.0.0.0", ""):
            return local_ip()
        return self.config.local_host

    @property
    def local_port(self) -> int:
        return self.config.local_port

    @property
    def local_address(self) -> TransportAddress:
        return TransportAddress(
            host=self.local_hostname,
            port=self.local_port,
            protocol=self.transport,
        )

    @property
    def contact_header(self) -> str:
        """Default Contact header for calls on this connection."""
        return (
            f"<sip:{self.config.contact_user}@{self.local_hostname}:{self.local_port}"
            f";transport={self.transport.lower()}>"
        )

    # ------------------------------------------------------------------
    # Demultiplexing
    # ------------------------------------------------------------------

    def dispatch(self, data: bytes, source: TransportAddress) -> None:
        """Parse a received message and queue it for its call."""
        try:
            msg = MessageParser.parse(data)
        except ValueError as e:
            logger.warning(f"Dropping unparseable message from {source}: {e}")
            return

        msg.source = source
        call_id = msg.call_id
        if not call_id:
            logger.warning(f"Dropping message without Call-ID from {source}")
            return

        with self._lock:
            if call_id in self._dead_calls:
                logger.debug(f"Dropping message for ended call {call_id}")
                return
            is_new = call_id not in self._call_queues
            call_queue = self._call_queues.setdefault(call_id, queue.Queue())

        call_queue.put(msg)
        if is_new:
            self._new_calls.put(call_id)

    def _queue_for(self, call_id: str) -> queue.Queue:
        with self._lock:
            return self._call_queues.setdefault(call_id, queue.Queue())

    def get_new_message(self, call_id: str, timeout: Optional[float] = None) -> SIPMessage:
        """
        Return the next message received for ``call_id``.

        Raises:
            TimeoutError: If nothing arrives within ``timeout`` seconds
        """
        if timeout is None:
            timeout = self.config.read_timeout
        try:
            return self._queue_for(call_id).get(timeout=timeout)
        except queue.Empty as e:
            raise TimeoutError(f"No message for call {call_id} within {timeout}s") from e

    def get_new_call_id(self, timeout: Optional[float] = None) -> str:
        """
        Return the Call-ID of the next call started by the peer.

        Raises:
            TimeoutError: If no new call arrives within ``timeout`` seconds
        """
        if timeout is None:
            timeout = self.config.read_timeout
        try:
            return self._new_calls.get(timeout=timeout)
        except queue.Empty as e:
            raise TimeoutError(f"No new call within {timeout}s") from e

    def register_call(self, call_id: str) -> None:
        """Make sure messages for ``call_id`` are kept, not announced as new."""
        self._queue_for(call_id)

    def mark_call_dead(self, call_id: str) -> None:
        """Stop delivering messages for ``call_id``."""
        with self._lock:
            self._dead_calls[call_id] = None
            while len(self._dead_calls) > self.config.max_dead_calls:
                self._dead_calls.popitem(last=False)
            self._call_queues.pop(call_id, None)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<{type(self).__name__}({self.local_address}, {state})>"
