"""
Message construction for scripted calls.

Builds protocol-correct requests and responses from a call's dialog state
and Via context. Caller-supplied headers override the computed defaults; an
override of ``None`` removes a default header altogether.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Mapping, Optional, Sequence, Union

from ._models._message import Request, Response
from ._types import CallError, HeaderValue, MessageType, MissingTargetError
from ._utils import USER_AGENT

if TYPE_CHECKING:
    from ._dialog import CSeq, Dialog

# Requests that belong to the transaction of an earlier request and so
# reuse its sequence number
_SAME_TRANSACTION_METHODS = ("ACK", "CANCEL")


class MessageBuilder:
    """
    Builds SIP messages for one dialog.

    Default headers:

    - Call-ID, CSeq, Via, Max-Forwards (70), Content-Length, Contact
    - User-Agent on requests, Server on responses
    - Requests: From = local party, To = peer party, Route = route set
    - Responses: To = local party, From = peer party, Record-Route = route set

    CSeq rule: a response echoes the CSeq of the last received message; ACK
    and CANCEL reuse the dialog's current number; every other request
    increments it first.
    """

    def __init__(self, contact: Optional[str] = None, user_agent: str = USER_AGENT):
        self.contact = contact
        self.user_agent = user_agent

    def calculate_cseq(
        self,
        dialog: Dialog,
        kind: MessageType,
        method: Optional[str] = None,
        last_cseq: Optional[CSeq] = None,
    ) -> str:
        if kind is MessageType.RESPONSE:
            if last_cseq is None:
                raise CallError(
                    "Cannot build a response: no CSeq has been received on this call"
                )
            return last_cseq.render()

        dialog.sequence.method = method
        if method not in _SAME_TRANSACTION_METHODS:
            return dialog.sequence.increment()
        return dialog.sequence.render()

    def build(
        self,
        dialog: Dialog,
        via: Union[str, Sequence[str], None],
        headers: Optional[Mapping[str, HeaderValue]] = None,
        body: Union[str, bytes] = "",
        sdp_body: Optional[str] = None,
        kind: MessageType = MessageType.REQUEST,
        method: Optional[str] = None,
        status_code: Optional[int] = None,
        reason_phrase: Optional[str] = None,
        last_cseq: Optional[CSeq] = None,
    ) -> Union[Request, Response]:
        """
        Build a request or a response.

        Args:
            dialog: Dialog state to take identity and routing from
            via: Via value(s) for the message
            headers: Overrides; a None value drops the header
            body: Message body
            sdp_body: SDP body; replaces body and adds Content-Type application/sdp
            kind: MessageType.REQUEST or MessageType.RESPONSE
            method: Request method (requests only)
            status_code: Status code (responses only)
            reason_phrase: Reason phrase (responses only, defaults from code)
            last_cseq: CSeq of the last received message (responses only)

        Raises:
            MissingTargetError: A request is built while the dialog has no target
            CallError: A response is built with no CSeq to echo
        """
        headers = dict(headers or {})
        is_request = kind is MessageType.REQUEST

        if is_request:
            if method is None:
                raise ValueError("A request needs a method")
            method = method.upper()
            if not dialog.target:
                raise MissingTargetError(
                    f"No target URI set for {method} on call {dialog.call_id}"
                )

        if sdp_body is not None:
            body = sdp_body
        if body is None:
            body = ""
        content = body.encode("utf-8") if isinstance(body, str) else body

        defaults: dict[str, HeaderValue] = {
            "Via": via,
            "Call-ID": dialog.call_id,
            "Max-Forwards": "70",
            "Content-Length": str(len(content)),
            "Contact": self.contact,
        }
        if sdp_body is not None:
            defaults["Content-Type"] = "application/sdp"

        # Requests always move the counter, even when the caller overrides the
        # rendered CSeq; responses only need one to echo when none is supplied
        if is_request or not has_header(headers, "CSeq"):
            defaults["CSeq"] = self.calculate_cseq(dialog, kind, method, last_cseq)

        if is_request:
            defaults["From"] = dialog.local_fromto
            defaults["To"] = dialog.peer_fromto
            defaults["Route"] = list(dialog.route_set) or None
            defaults["User-Agent"] = self.user_agent
        else:
            defaults["To"] = dialog.local_fromto
            defaults["From"] = dialog.peer_fromto
            defaults["Record-Route"] = list(dialog.route_set) or None
            defaults["Server"] = self.user_agent

        merged = _merge(defaults, headers)

        if is_request:
            return Request(method, dialog.target, headers=merged, content=content)
        return Response(
            status_code,
            reason_phrase=reason_phrase,
            headers=merged,
            content=content,
        )


def has_header(headers: Mapping[str, HeaderValue], name: str) -> bool:
    return any(key.lower() == name.lower() for key in headers)


def _merge(
    defaults: Mapping[str, HeaderValue], overrides: Mapping[str, HeaderValue]
) -> dict[str, HeaderValue]:
    """Merge header maps case-insensitively; overrides win, None removes."""
    merged: dict[str, HeaderValue] = {}
    names: dict[str, str] = {}

    for source in (defaults, overrides):
        for key, value in source.items():
            name = names.setdefault(key.lower(), key)
            merged[name] = value

    return {key: value for key, value in merged.items() if value is not None}


__all__ = ["MessageBuilder"]
