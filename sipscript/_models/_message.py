"""
SIP Message models (Request and Response) and Parser.

Provides SIP message creation, header access and parsing for the scripting
engine. Messages keep every value of repeated headers, so Via and
Record-Route chains survive a parse/serialize cycle intact.
"""

from __future__ import annotations

import typing
from abc import ABC, abstractmethod

from .._utils import EOL, REASON_PHRASES, SCHEME, VERSION, split_header_values
from .._types import HeaderTypes, MessageType, TransportAddress
from ._header import Headers, HeaderParser


# ============================================================================
# Base Classes
# ============================================================================


class SIPMessage(ABC):
    """
    Abstract base class for SIP messages.

    Concrete messages provide their start line and a :class:`MessageType`.
    Header access helpers follow the scripting API:

    - ``header(name)``: first value or None
    - ``all_headers(name)``: every value, or None when absent
    - ``first_header(name)``: first comma-separated element of the first value
    """

    type: typing.ClassVar[MessageType]

    def __init__(
        self,
        headers: HeaderTypes | None = None,
        content: str | bytes | None = None,
        version: str | None = None,
    ) -> None:
        self.version = version if version else f"{SCHEME}/{VERSION}"
        self._headers = (
            Headers(headers) if not isinstance(headers, Headers) else headers
        )

        if isinstance(content, str):
            self._content = content.encode("utf-8")
        elif isinstance(content, bytes):
            self._content = content
        else:
            self._content = b""

        # Where the message came from; set by the connection on receipt
        self.source: TransportAddress | None = None

        # Content-Length is mandatory (RFC 3261 Section 20.14)
        # Only set if the caller didn't provide it
        if "Content-Length" not in self._headers:
            self._headers["Content-Length"] = str(len(self._content))

    @property
    def headers(self) -> Headers:
        """Return the message headers."""
        return self._headers

    @property
    def content(self) -> bytes:
        """Return message content."""
        return self._content

    @property
    def content_text(self) -> str:
        """Return content decoded as UTF-8 text."""
        return self._content.decode("utf-8", errors="replace")

    @property
    def is_request(self) -> bool:
        return self.type is MessageType.REQUEST

    @property
    def is_response(self) -> bool:
        return self.type is MessageType.RESPONSE

    def header(self, name: str) -> str | None:
        """Return the first value of a header, or None."""
        return self._headers.get(name)

    def all_headers(self, name: str) -> list[str] | None:
        """Return every value of a header, or None when it is absent."""
        values = self._headers.get_all(name)
        return values or None

    def first_header(self, name: str) -> str | None:
        """
        Return the first element of a header.

        Unlike :meth:`header`, a comma-separated value such as
        ``Contact: <sip:a@x>, <sip:b@y>`` yields only ``<sip:a@x>``.
        """
        value = self.header(name)
        if value is None:
            return None
        elements = split_header_values(value)
        return elements[0] if elements else value

    # Common SIP headers as properties
    @property
    def call_id(self) -> str | None:
        return self.header("Call-ID")

    @property
    def cseq(self) -> str | None:
        return self.header("CSeq")

    @property
    def via(self) -> str | None:
        return self.header("Via")

    @property
    def from_header(self) -> str | None:
        return self.header("From")

    @property
    def to_header(self) -> str | None:
        return self.header("To")

    @property
    def contact(self) -> str | None:
        return self.header("Contact")

    @abstractmethod
    def start_line(self) -> str:
        """Return the request or status line."""
        ...

    def to_bytes(self) -> bytes:
        """Serialize message to bytes (wire format)."""
        encoding = self._headers.encoding
        lines = [self.start_line().encode(encoding)]

        header_bytes = self._headers.raw().rstrip(EOL.encode(encoding))
        if header_bytes:
            lines.append(header_bytes)

        # Empty line separating headers from body
        lines.append(b"")
        lines.append(self._content)

        return EOL.encode(encoding).join(lines)

    def to_string(self) -> str:
        """Serialize message to string for display."""
        return self.to_bytes().decode("utf-8", errors="replace")

    def __str__(self) -> str:
        return self.to_string()


# ============================================================================
# Request Implementation
# ============================================================================


class Request(SIPMessage):
    """SIP Request message."""

    type = MessageType.REQUEST

    def __init__(
        self,
        method: str,
        uri: str,
        *,
        headers: HeaderTypes | None = None,
        content: str | bytes | None = None,
        version: str | None = None,
    ) -> None:
        self.method = method.upper()
        self.uri = uri
        super().__init__(headers=headers, content=content, version=version)

    @property
    def status_code(self) -> None:
        return None

    def start_line(self) -> str:
        return f"{self.method} {self.uri} {self.version}"

    def __repr__(self) -> str:
        return f"<Request({self.method!r}, {self.uri!r})>"


# ============================================================================
# Response Implementation
# ============================================================================


class Response(SIPMessage):
    """
    SIP Response message.

    Response classes:
    - 1xx: Provisional (100 Trying, 180 Ringing, 183 Session Progress)
    - 2xx: Success (200 OK)
    - 3xx: Redirection (301 Moved Permanently, 302 Moved Temporarily)
    - 4xx-6xx: Failures
    """

    type = MessageType.RESPONSE

    def __init__(
        self,
        status_code: int,
        *,
        reason_phrase: str | None = None,
        headers: HeaderTypes | None = None,
        content: str | bytes | None = None,
        version: str | None = None,
    ) -> None:
        self.status_code = int(status_code)
        if reason_phrase is None:
            self.reason_phrase = REASON_PHRASES.get(self.status_code, "Unknown")
        else:
            self.reason_phrase = reason_phrase
        super().__init__(headers=headers, content=content, version=version)

    @property
    def method(self) -> None:
        return None

    @property
    def is_provisional(self) -> bool:
        """True if this is a 1xx provisional response."""
        return 100 <= self.status_code < 200

    @property
    def is_final(self) -> bool:
        """True if this is a final response (>= 200)."""
        return self.status_code >= 200

    def start_line(self) -> str:
        return f"{self.version} {self.status_code} {self.reason_phrase}"

    def __repr__(self) -> str:
        return f"<Response [{self.status_code} {self.reason_phrase}]>"


# ============================================================================
# Message Parser
# ============================================================================


class MessageParser:
    """
    SIP message parser.

    Parses both Request and Response messages from bytes or strings.
    """

    @staticmethod
    def parse(data: bytes | str) -> Request | Response:
        """
        Parse SIP message from bytes or string.

        Raises:
            ValueError: If the start line is invalid

        Example:
            >>> msg = MessageParser.parse(b"SIP/2.0 180 Ringing\\r\\nCSeq: 1 INVITE\\r\\n\\r\\n")
            >>> msg.status_code, msg.header("cseq")
            (180, '1 INVITE')
        """
        if isinstance(data, str):
            data = data.encode("utf-8")

        # Split into header section and body before normalizing line endings,
        # the body is taken verbatim
        for separator in (b"\r\n\r\n", b"\n\n"):
            if separator in data:
                header_data, body = data.split(separator, 1)
                break
        else:
            header_data, body = data, b""

        header_data = header_data.replace(b"\r\n", b"\n")
        lines = header_data.split(b"\n")
        if not lines or not lines[0].strip():
            raise ValueError("Empty SIP message")

        start_line = lines[0].strip()
        headers = HeaderParser.parse_lines(lines[1:])

        if start_line.startswith(SCHEME.encode("utf-8") + b"/"):
            return MessageParser.parse_response(start_line, headers, body)
        return MessageParser.parse_request(start_line, headers, body)

    @staticmethod
    def parse_request(start_line: bytes, headers: Headers, body: bytes) -> Request:
        """Parse a request line plus already-parsed headers."""
        parts = start_line.decode("utf-8").split(None, 2)
        if len(parts) < 3:
            raise ValueError(f"Invalid request line: {start_line!r}")

        method, uri, version = parts
        return Request(method, uri, version=version, headers=headers, content=body)

    @staticmethod
    def parse_response(start_line: bytes, headers: Headers, body: bytes) -> Response:
        """Parse a status line plus already-parsed headers."""
        parts = start_line.decode("utf-8").split(None, 2)
        if len(parts) < 2 or not parts[1].isdigit():
            raise ValueError(f"Invalid status line: {start_line!r}")

        return Response(
            int(parts[1]),
            version=parts[0],
            reason_phrase=parts[2] if len(parts) > 2 else "",
            headers=headers,
            content=body,
        )


__all__ = [
    "SIPMessage",
    "Request",
    "Response",
    "MessageParser",
]
