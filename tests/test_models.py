"""Tests for headers, messages and the small protocol helpers."""

import pytest

from sipscript import (
    BRANCH,
    HeaderParser,
    Headers,
    MessageParser,
    Request,
    Response,
    TransportAddress,
    new_branch,
    paramhash_to_str,
)
from sipscript._utils import split_header_values

from conftest import make_request, make_response


class TestHeaders:
    def test_case_insensitive_access(self) -> None:
        h = Headers({"call-id": "abc@host", "cseq": "1 INVITE"})
        assert h["Call-ID"] == "abc@host"
        assert h["CALL-ID"] == "abc@host"
        assert list(h.keys()) == ["Call-ID", "CSeq"]

    def test_compact_forms(self) -> None:
        h = Headers()
        h["i"] = "abc@host"
        h["v"] = "SIP/2.0/UDP a"
        assert h["Call-ID"] == "abc@host"
        assert h["Via"] == "SIP/2.0/UDP a"

    def test_multiple_values(self) -> None:
        h = Headers({"Via": ["SIP/2.0/UDP a", "SIP/2.0/UDP b"]})
        assert h["via"] == "SIP/2.0/UDP a"
        assert h.get_all("VIA") == ["SIP/2.0/UDP a", "SIP/2.0/UDP b"]
        assert h.to_lines() == ["Via: SIP/2.0/UDP a", "Via: SIP/2.0/UDP b"]

    def test_assignment_replaces_and_none_removes(self) -> None:
        h = Headers({"Route": ["<sip:p1>", "<sip:p2>"]})
        h["route"] = "<sip:p3>"
        assert h.get_all("Route") == ["<sip:p3>"]
        h["Route"] = None
        assert "Route" not in h

    def test_add_appends(self) -> None:
        h = Headers()
        h.add("Record-Route", "<sip:p1;lr>")
        h.add("record-route", "<sip:p2;lr>")
        assert h.get_all("Record-Route") == ["<sip:p1;lr>", "<sip:p2;lr>"]

    def test_get_all_of_missing_header(self) -> None:
        assert Headers().get_all("Via") == []


class TestHeaderParser:
    def test_comma_joined_via_is_split(self) -> None:
        h = HeaderParser.parse(b"Via: SIP/2.0/UDP a;branch=1, SIP/2.0/UDP b;branch=2\r\n")
        assert h.get_all("Via") == ["SIP/2.0/UDP a;branch=1", "SIP/2.0/UDP b;branch=2"]

    def test_comma_inside_brackets_is_kept(self) -> None:
        h = HeaderParser.parse(b'Record-Route: <sip:p1;lr>, "P, Two" <sip:p2;lr>\r\n')
        assert h.get_all("Record-Route") == ["<sip:p1;lr>", '"P, Two" <sip:p2;lr>']

    def test_contact_is_not_split(self) -> None:
        h = HeaderParser.parse(b"Contact: <sip:a@x>, <sip:b@y>\r\n")
        assert h.get_all("Contact") == ["<sip:a@x>, <sip:b@y>"]

    def test_folded_line(self) -> None:
        h = HeaderParser.parse(b"Subject: hello\r\n  world\r\n")
        assert h["Subject"] == "hello world"

    def test_parse_header_value(self) -> None:
        params = HeaderParser.parse_header_value('"Bob" <sip:bob@biloxi.com;transport=tcp>;tag=a6c85cf')
        assert params["value"] == '"Bob" <sip:bob@biloxi.com;transport=tcp>'
        assert params["tag"] == "a6c85cf"
        assert "transport" not in params


class TestMessageParser:
    def test_parse_request(self) -> None:
        msg = MessageParser.parse(make_request("INVITE", cseq=3, body="v=0\r\n"))
        assert isinstance(msg, Request)
        assert msg.is_request
        assert msg.method == "INVITE"
        assert msg.uri == "sip:bob@example.com"
        assert msg.status_code is None
        assert msg.cseq == "3 INVITE"
        assert msg.content == b"v=0\r\n"

    def test_parse_response(self) -> None:
        msg = MessageParser.parse(make_response(183, "Session Progress", to_tag="xyz"))
        assert isinstance(msg, Response)
        assert msg.is_response
        assert msg.status_code == 183
        assert msg.reason_phrase == "Session Progress"
        assert msg.method is None
        assert msg.is_provisional

    def test_compact_headers(self) -> None:
        raw = b"SIP/2.0 200 OK\r\ni: abc\r\nl: 0\r\n\r\n"
        msg = MessageParser.parse(raw)
        assert msg.call_id == "abc"
        assert msg.header("Content-Length") == "0"

    def test_invalid_status_line(self) -> None:
        with pytest.raises(ValueError):
            MessageParser.parse(b"SIP/2.0 abc OK\r\n\r\n")

    def test_empty_message(self) -> None:
        with pytest.raises(ValueError):
            MessageParser.parse(b"")

    def test_header_access_helpers(self) -> None:
        raw = make_response(200, contact="<sip:a@x>, <sip:b@y>")
        msg = MessageParser.parse(raw)
        assert msg.first_header("Contact") == "<sip:a@x>"
        assert msg.header("Contact") == "<sip:a@x>, <sip:b@y>"
        assert msg.all_headers("Record-Route") is None
        assert msg.all_headers("Via") == ["SIP/2.0/UDP 127.0.0.1:5070;branch=z9hG4bKlocal1"]


class TestMessages:
    def test_request_serialization(self) -> None:
        req = Request(
            "options",
            "sip:bob@example.com",
            headers={"Via": ["SIP/2.0/UDP a", "SIP/2.0/UDP b"], "Call-ID": "c1"},
        )
        lines = req.to_string().split("\r\n")
        assert lines[0] == "OPTIONS sip:bob@example.com SIP/2.0"
        assert lines[1:5] == [
            "Via: SIP/2.0/UDP a",
            "Via: SIP/2.0/UDP b",
            "Call-ID: c1",
            "Content-Length: 0",
        ]
        assert req.to_bytes().endswith(b"\r\n\r\n")

    def test_response_default_reason_phrase(self) -> None:
        assert Response(486).reason_phrase == "Busy Here"
        assert Response(299).reason_phrase == "Unknown"
        assert Response(200, reason_phrase="Fine").start_line() == "SIP/2.0 200 Fine"

    def test_content_length_from_body(self) -> None:
        resp = Response(200, content="hello")
        assert resp.header("Content-Length") == "5"

    def test_parsed_message_keeps_header_chains(self) -> None:
        raw = make_request(
            "INVITE",
            vias=["SIP/2.0/UDP p1;branch=z9hG4bK1", "SIP/2.0/UDP p2;branch=z9hG4bK2"],
            record_routes=["<sip:p1;lr>", "<sip:p2;lr>"],
        )
        msg = MessageParser.parse(MessageParser.parse(raw).to_bytes())
        assert msg.all_headers("Via") == [
            "SIP/2.0/UDP p1;branch=z9hG4bK1",
            "SIP/2.0/UDP p2;branch=z9hG4bK2",
        ]
        assert msg.all_headers("Record-Route") == ["<sip:p1;lr>", "<sip:p2;lr>"]


class TestTransportAddress:
    def test_from_uri(self) -> None:
        addr = TransportAddress.from_uri("sip:bob@10.0.0.2:5070;transport=tcp")
        assert addr == TransportAddress("10.0.0.2", 5070, "TCP")
        assert addr.is_reliable

    def test_from_name_addr_without_port(self) -> None:
        addr = TransportAddress.from_uri("<sip:proxy.example.com;lr>")
        assert addr == TransportAddress("proxy.example.com", 5060, "UDP")
        assert not addr.is_reliable

    def test_socket_ignored_in_comparison(self) -> None:
        assert TransportAddress("h", 1, "TCP", sock=object()) == TransportAddress("h", 1, "TCP")


class TestUtils:
    def test_new_branch(self) -> None:
        branch = new_branch()
        assert branch.startswith(BRANCH)
        assert branch != new_branch()

    def test_paramhash_to_str(self) -> None:
        assert paramhash_to_str({"transport": "tcp", "lr": True}) == ";transport=tcp;lr"
        assert paramhash_to_str({}) == ""

    def test_split_header_values(self) -> None:
        assert split_header_values('<sip:a@x;lr>, "B, Jr" <sip:b@y>') == [
            "<sip:a@x;lr>",
            '"B, Jr" <sip:b@y>',
        ]
