"""
SIP Headers implementation.

Provides a case-insensitive, order-preserving, multi-valued headers container
and a HeaderParser.
"""

from __future__ import annotations

import typing
from collections.abc import Mapping

from .._utils import EOL, HEADERS, HEADERS_COMPACT, MULTI_VALUE_HEADERS, split_header_values
from .._types import HeaderTypes, HeaderValue


# ============================================================================
# Headers Implementation
# ============================================================================


class Headers(typing.MutableMapping[str, str]):
    """Case-insensitive SIP headers preserving insertion order.

    A header name may carry several values (one per header line on the wire,
    e.g. Via or Record-Route). Mapping access returns the first value;
    :meth:`get_all` returns every value.

    Assigning a list replaces all values; assigning ``None`` removes the
    header.

    Examples:
        >>> h = Headers({"Via": ["SIP/2.0/UDP a;branch=z9hG4bK1", "SIP/2.0/UDP b"]})
        >>> h["via"]
        'SIP/2.0/UDP a;branch=z9hG4bK1'
        >>> h.get_all("VIA")
        ['SIP/2.0/UDP a;branch=z9hG4bK1', 'SIP/2.0/UDP b']
        >>> h["i"] = "abc@host"
        >>> list(h.keys())
        ['Via', 'Call-ID']
    """

    __slots__ = ("_store", "_encoding")

    @staticmethod
    def _canonical(name: str) -> str:
        """
        Convert header name to canonical form.

        - 'i' -> 'Call-ID' (compact form)
        - 'cseq' -> 'CSeq' (mapped header)
        - 'record-route' -> 'Record-Route' (Title-Case)
        """
        name = name.strip()

        if len(name) == 1 and name.lower() in HEADERS_COMPACT:
            name = HEADERS_COMPACT[name.lower()]

        lower_name = name.lower()
        if lower_name in HEADERS:
            return HEADERS[lower_name]

        return "-".join(part.capitalize() for part in lower_name.split("-"))

    def __init__(
        self,
        headers: HeaderTypes | None = None,
        encoding: str = "utf-8",
    ) -> None:
        # canonical name -> list of values, dict order is insertion order
        self._store: dict[str, list[str]] = {}
        self._encoding = encoding

        if isinstance(headers, Headers):
            self._store = {k: list(v) for k, v in headers._store.items()}
            self._encoding = headers._encoding
        elif isinstance(headers, Mapping):
            for key, value in headers.items():
                self[key] = value
        elif headers is not None:
            raise TypeError("headers must be Headers or Mapping")

    def __getitem__(self, key: str) -> str:
        """Get the first value for the given header (case-insensitive)."""
        canonical = self._canonical(key)
        if canonical not in self._store:
            raise KeyError(key)
        return self._store[canonical][0]

    def __setitem__(self, key: str, value: HeaderValue) -> None:
        """Set a header, replacing any existing values for this name."""
        canonical = self._canonical(key)

        if value is None:
            self._store.pop(canonical, None)
            return

        if isinstance(value, (list, tuple)):
            values = [str(v) for v in value]
        else:
            values = [str(value)]

        if not values:
            self._store.pop(canonical, None)
            return

        self._store[canonical] = values

    def __delitem__(self, key: str) -> None:
        canonical = self._canonical(key)
        if canonical not in self._store:
            raise KeyError(key)
        del self._store[canonical]

    def __iter__(self) -> typing.Iterator[str]:
        return iter(list(self._store))

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        return self._canonical(key) in self._store

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return self._store == other._store

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {v!r}" for k, v in self._store.items())
        return f"Headers({{{items}}})"

    def get_all(self, key: str) -> list[str]:
        """Return every value of a header, in received order."""
        return list(self._store.get(self._canonical(key), []))

    def add(self, key: str, value: str) -> None:
        """Append a value, keeping any existing values for this name."""
        canonical = self._canonical(key)
        self._store.setdefault(canonical, []).append(str(value))

    def copy(self) -> Headers:
        return Headers(self, encoding=self._encoding)

    def to_lines(self) -> list[str]:
        """Convert headers to 'Name: Value' lines, one per value."""
        return [
            f"{name}: {value}"
            for name, values in self._store.items()
            for value in values
        ]

    @property
    def encoding(self) -> str:
        return self._encoding

    def raw(self, encoding: str | None = None) -> bytes:
        """
        Serialize headers to raw bytes format for SIP messages.

        Returns headers in the format:
            Header-Name: value\r\n
            Another-Header: value\r\n
        """
        enc = encoding or self._encoding
        lines = self.to_lines()
        if not lines:
            return b""
        return (EOL.join(lines) + EOL).encode(enc)


# ============================================================================
# Header Parser
# ============================================================================


class HeaderParser:
    """
    Parser for SIP headers.

    Handles parsing of header lines with support for:
    - Line folding (RFC 3261 Section 7.3.1)
    - Compact header forms
    - Repeated headers and comma-joined Via/Route/Record-Route values
    """

    @staticmethod
    def parse(header_data: bytes | str, encoding: str = "utf-8") -> Headers:
        """
        Parse SIP headers from raw data.

        Example:
            >>> data = b"Via: SIP/2.0/UDP a\\r\\nv: SIP/2.0/UDP b\\r\\n"
            >>> HeaderParser.parse(data).get_all("Via")
            ['SIP/2.0/UDP a', 'SIP/2.0/UDP b']
        """
        if isinstance(header_data, str):
            header_data = header_data.encode(encoding)

        eol_bytes = EOL.encode(encoding)
        header_data = header_data.replace(b"\r\n", b"\n").replace(b"\n", eol_bytes)

        return HeaderParser.parse_lines(header_data.split(eol_bytes), encoding=encoding)

    @staticmethod
    def parse_lines(header_lines: list[bytes], encoding: str = "utf-8") -> Headers:
        """Parse headers from a list of header lines."""
        headers = Headers(encoding=encoding)
        fields: list[tuple[str, str]] = []

        for line in header_lines:
            if not line:
                continue

            # Folded line (starts with whitespace) continues the previous header
            if line[0:1] in (b" ", b"\t"):
                if fields:
                    name, value = fields[-1]
                    fields[-1] = (name, value + " " + line.decode(encoding).strip())
                continue

            if b":" not in line:
                continue  # Invalid header line, skip

            name, _, value = line.partition(b":")
            fields.append((name.decode(encoding).strip(), value.decode(encoding).strip()))

        for name, value in fields:
            if Headers._canonical(name).lower() in MULTI_VALUE_HEADERS:
                for element in split_header_values(value):
                    headers.add(name, element)
            else:
                headers.add(name, value)

        return headers

    @staticmethod
    def parse_header_value(value: str) -> dict[str, str]:
        """
        Parse a header value into main value and parameters.

        Example:
            >>> HeaderParser.parse_header_value('<sip:bob@biloxi.com>;tag=a6c85cf')
            {'value': '<sip:bob@biloxi.com>', 'tag': 'a6c85cf'}
        """
        result: dict[str, str] = {}

        # Parameters after the closing bracket of a name-addr belong to the header
        if ">" in value:
            addr, _, params = value.partition(">")
            result["value"] = (addr + ">").strip()
            parts = params.split(";")[1:]
        else:
            parts = value.split(";")
            result["value"] = parts[0].strip()
            parts = parts[1:]

        for part in parts:
            if "=" in part:
                key, val = part.split("=", 1)
                result[key.strip().lower()] = val.strip().strip('"')
            elif part.strip():
                result[part.strip().lower()] = ""

        return result


__all__ = [
    "Headers",
    "HeaderParser",
]
