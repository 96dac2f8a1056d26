"""sipscript - SIP scripting engine for driving SIP signaling in test scenarios."""

from __future__ import annotations

# Calls - Main API
from ._call import Call

# Dialog and transaction components
from ._builder import MessageBuilder
from ._dialog import CSeq, Dialog
from ._matcher import (
    AnyOfMatch,
    InboundMatcher,
    MatchResult,
    MethodCandidate,
    StatusCandidate,
)
from ._retrans import RetransmissionScheduler, RetransmissionToken

# Message models
from ._models import (
    HeaderParser,
    Headers,
    MessageParser,
    Request,
    Response,
    SIPMessage,
)

# Connections
from ._transports import BaseConnection
from ._transports._tcp import TCPConnection
from ._transports._udp import UDPConnection

# Types
from ._types import (
    CallConfig,
    CallEndedError,
    CallError,
    CallState,
    ConnectionError,
    HeaderTypes,
    MalformedHeaderError,
    MessageType,
    MissingTargetError,
    ReceiveTimeoutError,
    RetransmissionExceededError,
    TimeoutError,
    TransportAddress,
    TransportConfig,
    TransportError,
    UnexpectedMessageError,
    WriteError,
)

# Utilities
from ._utils import (
    BRANCH,
    EOL,
    REASON_PHRASES,
    console,
    local_ip,
    logger,
    new_branch,
    new_call_id,
    paramhash_to_str,
)

__version__ = "0.1.0"

__all__ = [
    # Calls
    "Call",
    "CallState",
    "CallConfig",
    # Dialog and transactions
    "CSeq",
    "Dialog",
    "MessageBuilder",
    "RetransmissionScheduler",
    "RetransmissionToken",
    "InboundMatcher",
    "MethodCandidate",
    "StatusCandidate",
    "MatchResult",
    "AnyOfMatch",
    # Messages
    "Headers",
    "HeaderParser",
    "SIPMessage",
    "Request",
    "Response",
    "MessageParser",
    "MessageType",
    "HeaderTypes",
    # Connections
    "BaseConnection",
    "UDPConnection",
    "TCPConnection",
    "TransportConfig",
    "TransportAddress",
    # Exceptions
    "CallError",
    "ReceiveTimeoutError",
    "UnexpectedMessageError",
    "MalformedHeaderError",
    "RetransmissionExceededError",
    "MissingTargetError",
    "CallEndedError",
    "TransportError",
    "ConnectionError",
    "WriteError",
    "TimeoutError",
    # Utilities
    "console",
    "logger",
    "local_ip",
    "new_branch",
    "new_call_id",
    "paramhash_to_str",
    # Constants
    "EOL",
    "BRANCH",
    "REASON_PHRASES",
    # Metadata
    "__version__",
]
