"""
Dialog state for scripted calls.

A dialog is the peer-to-peer relationship a call maintains across
transactions (RFC 3261 Section 12): Call-ID, local and peer tags, the remote
target and the route set, plus the local CSeq counter.

All changes to peer information go through the two dialog-creating
transitions, :meth:`Dialog.apply_dialog_creating_request` and
:meth:`Dialog.apply_dialog_creating_response`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

from ._types import MalformedHeaderError
from ._utils import new_tag
from ._models._header import HeaderParser

if TYPE_CHECKING:
    from ._models._message import SIPMessage

_ANGLE_URI = re.compile(r"<(.*?)>")


class CSeq:
    """
    A CSeq header value: sequence number plus method.

    Example:
        >>> cseq = CSeq.parse("314159 INVITE")
        >>> cseq.increment()
        '314160 INVITE'
    """

    __slots__ = ("number", "method")

    def __init__(self, number: int = 0, method: Optional[str] = None) -> None:
        self.number = number
        self.method = method

    @classmethod
    def parse(cls, value: Optional[str]) -> CSeq:
        """
        Parse a CSeq header value.

        Raises:
            MalformedHeaderError: If the sequence number is missing or not numeric
        """
        parts = (value or "").split()
        if not parts or not parts[0].isdigit():
            raise MalformedHeaderError(f"Malformed CSeq header: {value!r}")
        return cls(int(parts[0]), parts[1] if len(parts) > 1 else None)

    def increment(self) -> str:
        self.number += 1
        return self.render()

    def render(self) -> str:
        if self.method is None:
            return str(self.number)
        return f"{self.number} {self.method}"

    def __str__(self) -> str:
        return self.render()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CSeq):
            return NotImplemented
        return self.number == other.number and self.method == other.method

    def __repr__(self) -> str:
        return f"<CSeq({self.render()!r})>"


def _uri_of(value: str) -> str:
    """Return the URI inside <...>, or the value itself without parameters."""
    match = _ANGLE_URI.search(value)
    if match:
        return match.group(1)
    return value.split(";", 1)[0].strip()


@dataclass
class Dialog:
    """
    Represents the dialog of one scripted call.

    The dialog is identified by Call-ID, local tag and peer tag. The Call-ID
    never changes once created; ``established`` becomes True when the first
    dialog-creating message is applied.
    """

    call_id: str
    local_uri: str
    peer_uri: Optional[str]
    target: Optional[str] = None
    local_tag: str = field(default_factory=new_tag)
    peer_tag: Optional[str] = None
    route_set: List[str] = field(default_factory=list)
    sequence: CSeq = field(default_factory=CSeq)
    established: bool = False

    @classmethod
    def create(cls, call_id: str, local_uri: str, peer_target_uri: str) -> Dialog:
        """
        Create a dialog that is not yet established.

        The sequence starts at 0 so that the first request carries CSeq 1.
        """
        dialog = cls(
            call_id=call_id,
            local_uri=_uri_of(local_uri),
            peer_uri=_uri_of(peer_target_uri) if peer_target_uri else None,
        )
        dialog.set_target(peer_target_uri)
        return dialog

    def set_target(self, raw: Optional[str]) -> None:
        """
        Set the request-URI for subsequent requests.

        ``<sip:alice@example.com>`` stores ``sip:alice@example.com``; a value
        without angle brackets is stored verbatim; None is ignored.
        """
        if raw is None:
            return
        match = _ANGLE_URI.search(raw)
        self.target = match.group(1) if match else raw

    def update_sequence(self, number: int) -> None:
        """Adopt the sequence number of a received request."""
        self.sequence.number = number

    def apply_dialog_creating_request(self, msg: SIPMessage) -> None:
        """Capture peer information from a dialog-creating request."""
        self._apply(msg, msg.header("From"), reverse_routes=False)

    def apply_dialog_creating_response(self, msg: SIPMessage) -> None:
        """
        Capture peer information from a dialog-creating response.

        Record-Route is stored reversed: a response has walked the proxy
        chain backwards, so the reversed list is the next request's route.
        """
        self._apply(msg, msg.header("To"), reverse_routes=True)

    def _apply(
        self, msg: SIPMessage, peer_header: Optional[str], reverse_routes: bool
    ) -> None:
        self.established = True

        self.set_target(msg.first_header("Contact"))

        record_route = msg.all_headers("Record-Route")
        if record_route is not None:
            self.route_set = list(reversed(record_route)) if reverse_routes else list(record_route)

        self._set_peer_info(peer_header)

    def _set_peer_info(self, header: Optional[str]) -> None:
        if not header:
            return
        params = HeaderParser.parse_header_value(header)
        self.peer_uri = _uri_of(header)
        tag = params.get("tag")
        if tag:
            self.peer_tag = tag

    @property
    def local_fromto(self) -> str:
        """Local party as a From/To header value."""
        return f"<{self.local_uri}>;tag={self.local_tag}"

    @property
    def peer_fromto(self) -> Optional[str]:
        """Peer party as a From/To header value, tagged once the tag is known."""
        if self.peer_uri is None:
            return None
        if self.peer_tag:
            return f"<{self.peer_uri}>;tag={self.peer_tag}"
        return f"<{self.peer_uri}>"

    def __repr__(self) -> str:
        state = "established" if self.established else "init"
        return f"<Dialog({state}, {self.call_id[:12]}..., cseq={self.sequence.number})>"


__all__ = ["CSeq", "Dialog"]
