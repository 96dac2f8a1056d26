"""Shared fixtures: an in-memory connection and raw message helpers."""

from __future__ import annotations

import threading
from typing import Optional

import pytest

from sipscript import (
    BaseConnection,
    Call,
    CallConfig,
    MessageParser,
    SIPMessage,
    TransportAddress,
    TransportConfig,
)

PEER = TransportAddress(host="10.0.0.2", port=5060, protocol="UDP")

ALICE = "sip:alice@example.com"
BOB = "sip:bob@example.com"


class LoopbackConnection(BaseConnection):
    """Connection that records what is sent and lets tests inject messages."""

    def __init__(self, transport: str = "UDP", config: Optional[TransportConfig] = None):
        super().__init__(
            config
            or TransportConfig(local_host="127.0.0.1", local_port=5070, read_timeout=1.0)
        )
        self._transport = transport
        self._sent_lock = threading.Lock()
        self.sent: list[tuple[bytes, Optional[TransportAddress]]] = []
        self.added_socks: list = []

    @property
    def transport(self) -> str:
        return self._transport

    def send_msg(self, data, source):
        if isinstance(data, str):
            data = data.encode("utf-8")
        with self._sent_lock:
            self.sent.append((data, source))

    def add_sock(self, sock) -> None:
        self.added_socks.append(sock)

    def close(self) -> None:
        self._closed = True

    @property
    def sent_count(self) -> int:
        with self._sent_lock:
            return len(self.sent)

    def last_sent(self) -> SIPMessage:
        with self._sent_lock:
            data, _ = self.sent[-1]
        return MessageParser.parse(data)

    def deliver(self, raw: str, source: TransportAddress = PEER) -> None:
        self.dispatch(raw.encode("utf-8"), source)


def make_request(
    method: str,
    *,
    call_id: str = "call-1@test",
    cseq: int = 1,
    uri: str = BOB,
    from_uri: str = ALICE,
    from_tag: str = "alicetag",
    to_uri: str = BOB,
    to_tag: Optional[str] = None,
    contact: Optional[str] = "<sip:alice@10.0.0.2:5060>",
    vias: Optional[list[str]] = None,
    record_routes: Optional[list[str]] = None,
    body: str = "",
) -> str:
    vias = vias or ["SIP/2.0/UDP 10.0.0.2:5060;branch=z9hG4bKpeer1"]
    lines = [f"{method} {uri} SIP/2.0"]
    lines += [f"Via: {via}" for via in vias]
    lines.append(f"From: <{from_uri}>;tag={from_tag}")
    lines.append(f"To: <{to_uri}>" + (f";tag={to_tag}" if to_tag else ""))
    lines.append(f"Call-ID: {call_id}")
    lines.append(f"CSeq: {cseq} {method}")
    if contact:
        lines.append(f"Contact: {contact}")
    lines += [f"Record-Route: {rr}" for rr in record_routes or []]
    lines.append("Max-Forwards: 70")
    lines.append(f"Content-Length: {len(body.encode('utf-8'))}")
    return "\r\n".join(lines) + "\r\n\r\n" + body


def make_response(
    code: int,
    reason: str = "OK",
    *,
    call_id: str = "call-1@test",
    cseq: str = "1 INVITE",
    from_uri: str = ALICE,
    from_tag: str = "alicetag",
    to_uri: str = BOB,
    to_tag: Optional[str] = None,
    contact: Optional[str] = None,
    vias: Optional[list[str]] = None,
    record_routes: Optional[list[str]] = None,
) -> str:
    vias = vias or ["SIP/2.0/UDP 127.0.0.1:5070;branch=z9hG4bKlocal1"]
    lines = [f"SIP/2.0 {code} {reason}"]
    lines += [f"Via: {via}" for via in vias]
    lines.append(f"From: <{from_uri}>;tag={from_tag}")
    lines.append(f"To: <{to_uri}>" + (f";tag={to_tag}" if to_tag else ""))
    lines.append(f"Call-ID: {call_id}")
    lines.append(f"CSeq: {cseq}")
    if contact:
        lines.append(f"Contact: {contact}")
    lines += [f"Record-Route: {rr}" for rr in record_routes or []]
    lines.append("Content-Length: 0")
    return "\r\n".join(lines) + "\r\n\r\n"


@pytest.fixture
def cxn() -> LoopbackConnection:
    return LoopbackConnection()


@pytest.fixture
def tcp_cxn() -> LoopbackConnection:
    return LoopbackConnection(transport="TCP")


@pytest.fixture
def uac_call(cxn):
    """Outgoing call from alice to bob, stopped after the test."""
    call = Call(
        cxn,
        "call-1@test",
        ALICE,
        BOB,
        PEER,
        config=CallConfig(receive_timeout=0.5, poll_interval=0.02),
    )
    yield call
    call.retransmitter.cancel_all()
