"""
SIP Models Package.

This package contains the header container and the message models.
"""

from ._header import HeaderParser, Headers
from ._message import MessageParser, Request, Response, SIPMessage

__all__ = [
    # Headers
    "Headers",
    "HeaderParser",
    # Messages - Base classes
    "SIPMessage",
    # Messages - Implementations
    "Request",
    "Response",
    # Messages - Parser
    "MessageParser",
]
