"""Utilities and constants for the SIP scripting engine."""

import logging
import os
import socket
import time
import uuid

from rich.console import Console
from rich.logging import RichHandler

# Rich Console for pretty printing
console = Console()

# Configure logging with RichHandler
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
)

# Get logger for the package
logger = logging.getLogger("sipscript")

EOL = "\r\n"
SCHEME = "SIP"
VERSION = "2.0"
BRANCH = "z9hG4bK"

USER_AGENT = "sipscript SIP scripting engine"

# Compact header forms (RFC 3261 Section 7.3.3)
# Maps compact form -> normalized (lowercase) name
HEADERS_COMPACT = {
    "v": "via",
    "f": "from",
    "t": "to",
    "m": "contact",
    "i": "call-id",
    "e": "content-encoding",
    "l": "content-length",
    "c": "content-type",
    "s": "subject",
    "k": "supported",
    "o": "event",
    "r": "refer-to",
    "b": "referred-by",
    "x": "session-expires",
}

# Headers whose canonical form is not simple Title-Case
HEADERS = {
    "call-id": "Call-ID",
    "cseq": "CSeq",
    "www-authenticate": "WWW-Authenticate",
    "proxy-authenticate": "Proxy-Authenticate",
    "rack": "RAck",
    "rseq": "RSeq",
    "sip-etag": "SIP-ETag",
    "sip-if-match": "SIP-If-Match",
    "mime-version": "MIME-Version",
    "min-se": "Min-SE",
    "content-id": "Content-ID",
    "p-called-party-id": "P-Called-Party-ID",
    "p-dcs-trace-party-id": "P-DCS-Trace-Party-ID",
    "p-dcs-osps": "P-DCS-OSPS",
    "p-dcs-laes": "P-DCS-LAES",
}

# Headers that may carry several comma-separated values on one line and
# whose individual values matter for routing.
MULTI_VALUE_HEADERS = ("via", "route", "record-route")

# Standard SIP response reason phrases (RFC 3261)
REASON_PHRASES = {
    100: "Trying",
    180: "Ringing",
    181: "Call Is Being Forwarded",
    182: "Queued",
    183: "Session Progress",
    200: "OK",
    202: "Accepted",
    300: "Multiple Choices",
    301: "Moved Permanently",
    302: "Moved Temporarily",
    305: "Use Proxy",
    380: "Alternative Service",
    400: "Bad Request",
    401: "Unauthorized",
    402: "Payment Required",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    406: "Not Acceptable",
    407: "Proxy Authentication Required",
    408: "Request Timeout",
    410: "Gone",
    413: "Request Entity Too Large",
    414: "Request-URI Too Long",
    415: "Unsupported Media Type",
    416: "Unsupported URI Scheme",
    420: "Bad Extension",
    421: "Extension Required",
    423: "Interval Too Brief",
    480: "Temporarily Unavailable",
    481: "Call/Transaction Does Not Exist",
    482: "Loop Detected",
    483: "Too Many Hops",
    484: "Address Incomplete",
    485: "Ambiguous",
    486: "Busy Here",
    487: "Request Terminated",
    488: "Not Acceptable Here",
    491: "Request Pending",
    493: "Undecipherable",
    500: "Internal Server Error",
    501: "Not Implemented",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Server Time-out",
    505: "Version Not Supported",
    513: "Message Too Large",
    600: "Busy Everywhere",
    603: "Decline",
    604: "Does Not Exist Anywhere",
    606: "Not Acceptable",
}


def local_ip() -> str:
    """Best-effort guess of the local IPv4 address used for outbound traffic."""
    try:
        # UDP connect does not send anything, it only selects a route
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            s.connect(("10.255.255.255", 1))
            return s.getsockname()[0]
        finally:
            s.close()
    except OSError:
        return "127.0.0.1"


def new_call_id() -> str:
    """Generate a Call-ID of the form ``<pid>_<unix time>_<random>@<local ip>``."""
    return f"{os.getpid()}_{int(time.time())}_{uuid.uuid4().hex[:8]}@{local_ip()}"


def new_branch() -> str:
    """Generate an RFC 3261 compliant Via branch (magic cookie prefixed)."""
    return f"{BRANCH}{uuid.uuid4().hex}"


def new_tag() -> str:
    return uuid.uuid4().hex[:10]


def paramhash_to_str(params: dict) -> str:
    """
    Render a parameter mapping as a ``;key=value`` string.

    Parameters whose value is ``True`` are rendered as flags.

    Example:
        >>> paramhash_to_str({"transport": "tcp", "lr": True})
        ';transport=tcp;lr'
    """
    return "".join(
        f";{key}" if value is True else f";{key}={value}"
        for key, value in params.items()
    )


def split_header_values(value: str) -> list[str]:
    """
    Split a comma-separated header value into its elements.

    Commas inside angle brackets or double quotes are not separators.

    Example:
        >>> split_header_values('<sip:a@x;lr>, "B, Jr" <sip:b@y>')
        ['<sip:a@x;lr>', '"B, Jr" <sip:b@y>']
    """
    parts = []
    current = []
    in_quotes = False
    in_brackets = False

    for char in value:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "<" and not in_quotes:
            in_brackets = True
        elif char == ">" and not in_quotes:
            in_brackets = False
        elif char == "," and not in_quotes and not in_brackets:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(char)

    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return [p for p in parts if p]
