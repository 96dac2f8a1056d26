"""
Type definitions for the SIP scripting engine.

This module centralizes configuration dataclasses, the message/call enums and
every exception raised by the package.
"""

from __future__ import annotations

import socket
import typing
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Optional

from ._utils import USER_AGENT

if typing.TYPE_CHECKING:
    from ._models._header import Headers
    from ._models._message import SIPMessage


# =============================================================================
# Header Types
# =============================================================================

HeaderValue = typing.Union[str, typing.Sequence[str], None]

HeaderTypes = typing.Union[
    "Headers",
    Mapping[str, HeaderValue],
]


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class TransportConfig:
    """Configuration for connections."""

    # Network settings
    local_host: str = "0.0.0.0"
    local_port: int = 5060

    # Hostname placed in Via and Contact (defaults to local_host, or the
    # detected local IP when bound to the wildcard address)
    advertised_host: Optional[str] = None

    # User part of the default Contact header
    contact_user: str = "sipscript"

    # Timeouts (in seconds)
    connect_timeout: float = 5.0
    read_timeout: float = 32.0  # default wait for the next message of a call

    # Buffer settings
    buffer_size: int = 65535  # Max SIP message size

    # Ended Call-IDs remembered so late retransmissions are dropped, oldest
    # forgotten first
    max_dead_calls: int = 1024

    # Additional options
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class CallConfig:
    """Per-call timers and behaviour."""

    # RFC 3261 timers (in seconds)
    t1: float = 0.5
    t2: float = 32.0

    # None falls back to the connection's read_timeout
    receive_timeout: Optional[float] = None

    # Granularity at which a blocked receive notices a background failure
    poll_interval: float = 0.1

    user_agent: str = USER_AGENT

    # Print every sent/received message to the rich console
    trace: bool = False


@dataclass
class TransportAddress:
    """
    Represents a transport address (host, port, protocol).

    Connection-oriented addresses may carry the connected socket messages
    should travel over; the socket takes no part in comparisons.
    """

    host: str
    port: int = 5060
    protocol: str = "UDP"  # UDP or TCP
    sock: Optional[socket.socket] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"{self.protocol.upper()}:{self.host}:{self.port}"

    @property
    def is_reliable(self) -> bool:
        """Check if transport is connection-oriented."""
        return self.protocol.upper() in ("TCP", "TLS")

    @classmethod
    def from_uri(cls, uri: str) -> TransportAddress:
        """
        Parse transport address from a SIP URI or name-addr.

        Examples:
            sip:user@host:5060;transport=tcp
            <sip:proxy.example.com:5070;lr>
        """
        if "<" in uri and ">" in uri:
            uri = uri[uri.index("<") + 1 : uri.index(">")]

        protocol = "UDP"
        if ";transport=" in uri.lower():
            transport_param = uri.lower().split(";transport=")[1].split(";")[0]
            protocol = transport_param.upper()

        rest = uri.split(":", 1)[1] if ":" in uri else uri
        rest = rest.split(";")[0].split("?")[0]
        host_part = rest.split("@", 1)[1] if "@" in rest else rest

        if ":" in host_part:
            host, port_str = host_part.rsplit(":", 1)
            port = int(port_str)
        else:
            host = host_part
            port = 5060

        return cls(host=host, port=port, protocol=protocol)


# =============================================================================
# Enums
# =============================================================================


class MessageType(Enum):
    """Kind of SIP message."""

    REQUEST = auto()
    RESPONSE = auto()


class CallState(Enum):
    """
    Lifecycle of a scripted call.

    INIT → ESTABLISHED → ENDED

    INIT: dialog created, nothing known about the peer yet.
    ESTABLISHED: peer tag, target and route set captured from a
        dialog-creating message.
    ENDED: the call was deregistered from its connection.
    """

    INIT = auto()
    ESTABLISHED = auto()
    ENDED = auto()


# =============================================================================
# Transport Exceptions
# =============================================================================


class TransportError(Exception):
    """Base exception for transport errors."""

    pass


class ConnectionError(TransportError):
    """Raised when connection fails (TCP only)."""

    pass


class WriteError(TransportError):
    """Raised when writing to transport fails."""

    pass


class TimeoutError(TransportError):
    """Raised when no message arrives before the deadline."""

    pass


# =============================================================================
# Call Exceptions
# =============================================================================


class CallError(Exception):
    """Base exception for failures of a scripted call."""

    pass


class ReceiveTimeoutError(CallError):
    """Raised when no message arrives while waiting for an expected one."""

    def __init__(self, message: str, expected: Any = None) -> None:
        super().__init__(message)
        self.expected = expected


class UnexpectedMessageError(CallError):
    """Raised when the received message matches none of the expected ones."""

    def __init__(self, message: str, received: Optional[SIPMessage] = None) -> None:
        super().__init__(message)
        self.received = received


class MalformedHeaderError(CallError, ValueError):
    """Raised when a required header cannot be parsed."""

    pass


class RetransmissionExceededError(CallError):
    """Raised when a retransmission reaches the T2 ceiling without cancellation."""

    pass


class MissingTargetError(CallError):
    """Raised when building a request without a request-URI to send to."""

    pass


class CallEndedError(CallError):
    """Raised when operating on a call after end_call()."""

    pass


# =============================================================================
# Re-exports for convenience
# =============================================================================

__all__ = [
    # Header types
    "HeaderValue",
    "HeaderTypes",
    # Configuration
    "TransportConfig",
    "CallConfig",
    "TransportAddress",
    # Enums
    "MessageType",
    "CallState",
    # Transport exceptions
    "TransportError",
    "ConnectionError",
    "WriteError",
    "TimeoutError",
    # Call exceptions
    "CallError",
    "ReceiveTimeoutError",
    "UnexpectedMessageError",
    "MalformedHeaderError",
    "RetransmissionExceededError",
    "MissingTargetError",
    "CallEndedError",
]
