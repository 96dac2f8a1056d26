"""
Connections for scripted calls.

This package provides the connections calls send and receive through:
- UDP: Connectionless, unreliable transport (calls retransmit)
- TCP: Connection-oriented, reliable transport
"""

from .._types import (
    ConnectionError,
    TimeoutError,
    TransportAddress,
    TransportConfig,
    TransportError,
    WriteError,
)
from ._base import BaseConnection

__all__ = [
    # Base classes
    "BaseConnection",
    "TransportConfig",
    "TransportAddress",
    # Exceptions
    "TransportError",
    "ConnectionError",
    "WriteError",
    "TimeoutError",
]


# Connection implementations are lazy-loaded to avoid starting with sockets
# nobody asked for
def __getattr__(name: str):
    """Lazy import connection implementations."""
    if name == "UDPConnection":
        from ._udp import UDPConnection

        return UDPConnection
    elif name == "TCPConnection":
        from ._tcp import TCPConnection

        return TCPConnection

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
