"""
Scripted SIP calls.

A :class:`Call` lets a test script play either side of a SIP call. The
script says what to send and what it expects to receive; the call keeps the
dialog (Call-ID, tags, target, route set, CSeq) and the Via context right,
and retransmits requests over UDP until the next message arrives.

Example:
    >>> cxn = UDPConnection(TransportConfig(local_port=5070))
    >>> call = Call(cxn, new_call_id(), "sip:alice@example.com",
    ...             "sip:bob@example.com", TransportAddress("10.0.0.2", 5060))
    >>> call.send_request("INVITE", sdp_body=offer)
    >>> call.recv_response("100|180", ignore_responses=[100])
    >>> call.recv_response("200", dialog_creating=True)
    >>> call.send_request("ACK")
    >>> call.send_request("BYE")
    >>> call.recv_response("200")
    >>> call.end_call()
"""

from __future__ import annotations

import re
import socket
import time
from typing import TYPE_CHECKING, Iterable, Mapping, Optional, Sequence, Union

from ._builder import MessageBuilder, has_header
from ._dialog import CSeq, Dialog
from ._matcher import CandidateLike, InboundMatcher
from ._retrans import RetransmissionScheduler
from ._types import (
    CallConfig,
    CallEndedError,
    CallState,
    ConnectionError,
    HeaderValue,
    MalformedHeaderError,
    MessageType,
    ReceiveTimeoutError,
    RetransmissionExceededError,
    TimeoutError,
    TransportAddress,
    UnexpectedMessageError,
)
from ._utils import console, logger, new_branch

if TYPE_CHECKING:
    from ._models._message import Request, Response, SIPMessage
    from ._transports._base import BaseConnection

_NEXT_HOP = re.compile(r"<sips?:(?:[^@>]+@)?([^:;>]+):(\d+)[;>]")


class Call:
    """
    One side of a scripted SIP call.

    States: INIT → ESTABLISHED (first dialog-creating message) → ENDED
    (``end_call``). Every operation on an ended call raises CallEndedError.

    A retransmission that gives up on a background thread is stored and
    raised as RetransmissionExceededError by the next operation of the
    call, including a receive that is already waiting.
    """

    def __init__(
        self,
        cxn: BaseConnection,
        cid: str,
        my_uri: str,
        target_uri: Optional[str] = None,
        destination: Optional[TransportAddress] = None,
        config: Optional[CallConfig] = None,
    ) -> None:
        """
        Initialize a call.

        Args:
            cxn: Connection to send and receive through
            cid: Call-ID of the call
            my_uri: Local URI (From of our requests)
            target_uri: Request-URI of the peer, if known
            destination: Where to send messages until something is received
            config: Timers and tracing options
        """
        self._cxn = cxn
        self.config = config or CallConfig()

        self._dialog = Dialog.create(cid, my_uri, target_uri)
        self._state = CallState.INIT

        self._builder = MessageBuilder(
            contact=cxn.contact_header, user_agent=self.config.user_agent
        )
        self._retrans = RetransmissionScheduler(
            t1=self.config.t1,
            t2=self.config.t2,
            on_failure=self._on_retransmission_failure,
            name=cid,
        )
        self._failure: Optional[RetransmissionExceededError] = None

        self._src: Optional[TransportAddress] = None
        self._last_via: Union[str, Sequence[str], None] = None
        self._last_cseq: Optional[CSeq] = None
        self._last_message: Optional[SIPMessage] = None

        cxn.register_call(cid)
        if destination is not None:
            self.setdest(destination, recv_from_this=True)
        self.update_branch()

    @classmethod
    def incoming(
        cls,
        cxn: BaseConnection,
        my_uri: str,
        timeout: Optional[float] = None,
        config: Optional[CallConfig] = None,
    ) -> Call:
        """
        Wait for the peer to start a new call and return it.

        The first message of the call is left queued for ``recv_request``.

        Raises:
            ReceiveTimeoutError: If no new call arrives in time
        """
        try:
            cid = cxn.get_new_call_id(timeout)
        except TimeoutError as e:
            raise ReceiveTimeoutError(
                f"{my_uri} timed out waiting for a new call", expected="new call"
            ) from e
        return cls(cxn, cid, my_uri, config=config)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def call_id(self) -> str:
        return self._dialog.call_id

    @property
    def cid(self) -> str:
        return self._dialog.call_id

    @property
    def dialog(self) -> Dialog:
        return self._dialog

    @property
    def state(self) -> CallState:
        return self._state

    @property
    def destination(self) -> Optional[TransportAddress]:
        return self._src

    @property
    def last_message(self) -> Optional[SIPMessage]:
        """The most recently received message."""
        return self._last_message

    @property
    def last_via(self) -> Union[str, Sequence[str], None]:
        """Via value(s) the next message will carry."""
        return self._last_via

    @property
    def retransmitter(self) -> RetransmissionScheduler:
        return self._retrans

    # ------------------------------------------------------------------
    # Dialog and transaction control
    # ------------------------------------------------------------------

    def set_callee(self, uri: Optional[str]) -> None:
        """Set the request-URI; ``<...>`` is unwrapped and None is ignored."""
        self._dialog.set_target(uri)

    set_dialog_target = set_callee

    def setdest(self, source: TransportAddress, *, recv_from_this: bool = False) -> None:
        """
        Set where messages of this call are sent until the next receive.

        Args:
            source: Destination address
            recv_from_this: Also listen on the source's socket (only
                meaningful for connection-oriented transports)
        """
        self._src = source
        if recv_from_this and source.sock is not None:
            self._cxn.add_sock(source.sock)

    def update_branch(self, via: Union[str, Sequence[str], None] = None) -> None:
        """Start a new transaction: use ``via`` or a Via with a fresh branch."""
        self._last_via = via or self._new_via()

    new_transaction = update_branch

    def _new_via(self) -> str:
        return (
            f"SIP/2.0/{self._cxn.transport} "
            f"{self._cxn.local_hostname}:{self._cxn.local_port};rport;branch={new_branch()}"
        )

    def _assoc_with_msg(self, msg: SIPMessage) -> None:
        self._last_via = msg.all_headers("Via")

    def get_next_hop(self, header: str) -> TransportAddress:
        """
        Open a TCP connection to the URI of a Route/Record-Route value.

        Raises:
            MalformedHeaderError: If no host and port can be found in ``header``
            ConnectionError: If the connection fails
        """
        match = _NEXT_HOP.search(header)
        if not match:
            raise MalformedHeaderError(f"No host:port in route header {header!r}")
        host, port = match.group(1), int(match.group(2))

        try:
            sock = socket.create_connection(
                (host, port), timeout=self._cxn.config.connect_timeout
            )
        except OSError as e:
            raise ConnectionError(f"Failed to connect to {host}:{port}: {e}") from e

        if self._cxn.transport == "TCP":
            self._cxn.add_sock(sock)
        return TransportAddress(host=host, port=port, protocol="TCP", sock=sock)

    def end_call(self) -> None:
        """Stop receiving for this call and stop its retransmissions."""
        self._retrans.cancel_all()
        self._cxn.mark_call_dead(self.call_id)
        self._state = CallState.ENDED
        logger.debug(f"Call {self.call_id} ended")

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    def recv_request(
        self,
        method: str,
        *,
        dialog_creating: bool = True,
        timeout: Optional[float] = None,
    ) -> Request:
        """
        Receive a request whose method matches the ``method`` pattern.

        Args:
            method: Regular expression searched in the method ("INVITE", "BYE|CANCEL")
            dialog_creating: Capture peer tag, target and route set from it
            timeout: Seconds to wait (defaults from config/connection)

        Raises:
            ReceiveTimeoutError: Nothing arrived in time
            UnexpectedMessageError: Something else arrived
        """
        msg = self._recv_something(timeout, method)

        if not InboundMatcher.match_request(msg, method):
            raise UnexpectedMessageError(
                f"Expected {method}, got:\n{msg.to_string()}", received=msg
            )

        self._dialog.update_sequence(self._last_cseq.number)

        if dialog_creating:
            self._dialog.apply_dialog_creating_request(msg)
            self._mark_established()
        return msg

    def recv_response(
        self,
        code: Union[str, int],
        *,
        dialog_creating: bool = False,
        ignore_responses: Iterable[Union[str, int]] = (),
        timeout: Optional[float] = None,
    ) -> Response:
        """
        Receive a response whose status code matches the ``code`` pattern.

        Args:
            code: Regular expression searched in the status code ("200", "18[03]")
            dialog_creating: Capture peer tag, target and route set from it
            ignore_responses: Status codes to skip (e.g. [100])
            timeout: Seconds to wait for each message

        Raises:
            ReceiveTimeoutError: Nothing arrived in time
            UnexpectedMessageError: Something else arrived
        """
        ignore_responses = tuple(ignore_responses)

        while True:
            msg = self._recv_something(timeout, code)
            result = InboundMatcher.match_response(msg, code, ignore_responses)
            if result.should_retry:
                logger.debug(f"Ignoring {msg.status_code} while waiting for {code}")
                continue
            break

        if not msg.is_response:
            raise UnexpectedMessageError(
                f"Expected {code}, got:\n{msg.to_string()}", received=msg
            )
        if not result.matched:
            raise UnexpectedMessageError(
                f"Expected {code}, got {msg.status_code}", received=msg
            )

        if dialog_creating:
            self._dialog.apply_dialog_creating_response(msg)
            self._mark_established()
        return msg

    def recv_any_of(
        self,
        possible_messages: Sequence[CandidateLike],
        *,
        timeout: Optional[float] = None,
    ) -> SIPMessage:
        """
        Receive whichever of ``possible_messages`` arrives next.

        Elements can be:

        - a string naming a SIP method, e.g. "INVITE"
        - a number naming a status code, e.g. 200
        - a one or two item sequence holding one of the above and whether
          the message is dialog-creating. Requests are by default,
          responses are not.

        For example ``["INVITE", 301, ["ACK", False], [200, True]]``.

        Raises:
            ReceiveTimeoutError: Nothing arrived in time
            UnexpectedMessageError: The message matched none of them
        """
        candidates = [InboundMatcher.candidate(entry) for entry in possible_messages]
        expected = ", ".join(str(c) for c in candidates)

        msg = self._recv_something(timeout, f"one of these: {expected}")

        match = InboundMatcher.match_any_of(msg, candidates)
        if match is None:
            raise UnexpectedMessageError(
                f"Expected one of {expected}, got:\n{msg.to_string()}", received=msg
            )

        if match.dialog_creating:
            if msg.is_request:
                self._dialog.apply_dialog_creating_request(msg)
            else:
                self._dialog.apply_dialog_creating_response(msg)
            self._mark_established()
        return msg

    def _recv_something(self, timeout: Optional[float], expected: object) -> SIPMessage:
        self._check_usable()

        if timeout is None:
            timeout = self.config.receive_timeout
        if timeout is None:
            timeout = self._cxn.config.read_timeout

        deadline = time.monotonic() + timeout
        while True:
            self._raise_pending_failure()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ReceiveTimeoutError(
                    f"{self._dialog.local_uri} timed out waiting for {expected}",
                    expected=expected,
                )
            try:
                msg = self._cxn.get_new_message(
                    self.call_id, timeout=min(remaining, self.config.poll_interval)
                )
            except TimeoutError:
                continue
            break

        self._retrans.cancel_current()
        cseq = CSeq.parse(msg.header("CSeq"))
        self._src = msg.source
        self._last_via = msg.all_headers("Via")
        self._last_cseq = cseq
        self._last_message = msg

        self._trace("<<< RECEIVED", msg, "bold cyan")
        return msg

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send_request(
        self,
        method: str,
        *,
        body: Union[str, bytes] = "",
        sdp_body: Optional[str] = None,
        headers: Optional[Mapping[str, HeaderValue]] = None,
        new_tsx: Optional[bool] = None,
        same_tsx_as: Optional[SIPMessage] = None,
        retrans: Optional[bool] = None,
    ) -> Request:
        """
        Send a request with the given method.

        Args:
            method: SIP method
            body: Message body
            sdp_body: As body, with Content-Type application/sdp
            headers: Headers overriding the defaults (None removes one)
            new_tsx: Generate a new branch. Defaults to True, or False when
                same_tsx_as is given
            same_tsx_as: Message to take the Via and CSeq number from, e.g.
                the INVITE when ACKing it after a PRACK transaction
            retrans: Retransmit until the next message arrives. Defaults to
                True for every method but ACK

        Returns:
            The request as sent
        """
        self._check_usable()
        method = method.upper()
        headers = dict(headers or {})

        if retrans is None:
            retrans = method != "ACK"
        if new_tsx is None:
            new_tsx = same_tsx_as is None

        if same_tsx_as is not None:
            self._assoc_with_msg(same_tsx_as)
            if not has_header(headers, "CSeq"):
                headers["CSeq"] = f"{CSeq.parse(same_tsx_as.header('CSeq')).number} {method}"

        if new_tsx:
            self.update_branch()

        msg = self._builder.build(
            self._dialog,
            self._last_via,
            headers,
            body=body,
            sdp_body=sdp_body,
            kind=MessageType.REQUEST,
            method=method,
        )
        self._send_something(msg, retrans)
        return msg

    def send_response(
        self,
        code: int,
        phrase: Optional[str] = None,
        *,
        body: Union[str, bytes] = "",
        sdp_body: Optional[str] = None,
        headers: Optional[Mapping[str, HeaderValue]] = None,
        response_to: Optional[SIPMessage] = None,
        retrans: bool = False,
    ) -> Response:
        """
        Send a response with the given status code and reason phrase.

        Args:
            code: Status code
            phrase: Reason phrase (defaults from the code)
            body: Message body
            sdp_body: As body, with Content-Type application/sdp
            headers: Headers overriding the defaults (None removes one)
            response_to: Request to take the Via and CSeq from, e.g. the
                INVITE when answering it after handling a CANCEL
            retrans: Retransmit until the next message arrives

        Returns:
            The response as sent
        """
        self._check_usable()
        headers = dict(headers or {})

        if response_to is not None:
            self._assoc_with_msg(response_to)
            if not has_header(headers, "CSeq"):
                headers["CSeq"] = CSeq.parse(response_to.header("CSeq")).render()

        msg = self._builder.build(
            self._dialog,
            self._last_via,
            headers,
            body=body,
            sdp_body=sdp_body,
            kind=MessageType.RESPONSE,
            status_code=code,
            reason_phrase=phrase,
            last_cseq=self._last_cseq,
        )
        self._send_something(msg, retrans)
        return msg

    def _send_something(self, msg: SIPMessage, retrans: bool) -> None:
        data = msg.to_bytes()
        self._trace(">>> SENT", msg, "bold green")
        self._cxn.send_msg(data, self._src)
        self._retrans.start_if_needed(self._cxn, data, self._src, retrans)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _mark_established(self) -> None:
        if self._state is CallState.INIT:
            self._state = CallState.ESTABLISHED

    def _check_usable(self) -> None:
        if self._state is CallState.ENDED:
            raise CallEndedError(f"Call {self.call_id} has ended")
        self._raise_pending_failure()

    def _raise_pending_failure(self) -> None:
        if self._failure is not None:
            raise self._failure

    def _on_retransmission_failure(self, error: RetransmissionExceededError) -> None:
        logger.critical(f"Call {self.call_id}: {error}")
        console.print(f"[bold red]!!! {error}[/bold red]")
        self._failure = error

    def _trace(self, label: str, msg: SIPMessage, style: str) -> None:
        first_line = msg.start_line()
        where = f" ({self._src})" if self._src else ""
        logger.debug(f"{label} {first_line}{where} on call {self.call_id}")
        if self.config.trace:
            console.print(f"\n[{style}]{label}{where}[/{style}]")
            console.print(msg.to_string(), markup=False, highlight=False)
            console.print("=" * 80)

    def __repr__(self) -> str:
        return f"<Call({self.call_id!r}, {self._state.name})>"


__all__ = ["Call"]
