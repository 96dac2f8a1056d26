"""Tests for sipscript._dialog."""

import pytest

from sipscript import CSeq, Dialog, MalformedHeaderError, MessageParser

from conftest import ALICE, BOB, make_request, make_response

ROUTES = ["<sip:p1.example.com;lr>", "<sip:p2.example.com;lr>", "<sip:p3.example.com;lr>"]


class TestCSeq:
    def test_parse(self) -> None:
        cseq = CSeq.parse("314159 INVITE")
        assert cseq.number == 314159
        assert cseq.method == "INVITE"

    def test_parse_without_method(self) -> None:
        cseq = CSeq.parse("7")
        assert cseq.number == 7
        assert cseq.method is None
        assert cseq.render() == "7"

    @pytest.mark.parametrize("value", [None, "", "INVITE", "abc INVITE", "-1 BYE"])
    def test_parse_malformed(self, value) -> None:
        with pytest.raises(MalformedHeaderError):
            CSeq.parse(value)

    def test_malformed_is_a_value_error(self) -> None:
        with pytest.raises(ValueError):
            CSeq.parse("x")

    def test_increment(self) -> None:
        cseq = CSeq.parse("314159 INVITE")
        assert cseq.increment() == "314160 INVITE"
        assert cseq.number == 314160

    def test_equality(self) -> None:
        assert CSeq.parse("1 BYE") == CSeq(1, "BYE")
        assert CSeq.parse("1 BYE") != CSeq(1, "INVITE")


class TestDialogCreate:
    def test_initial_state(self) -> None:
        d = Dialog.create("c1", ALICE, BOB)
        assert d.call_id == "c1"
        assert d.target == BOB
        assert d.peer_uri == BOB
        assert d.peer_tag is None
        assert d.route_set == []
        assert d.sequence.number == 0
        assert not d.established

    def test_local_tags_are_unique(self) -> None:
        assert Dialog.create("c1", ALICE, BOB).local_tag != Dialog.create("c1", ALICE, BOB).local_tag

    def test_bracketed_uris(self) -> None:
        d = Dialog.create("c1", f"<{ALICE}>", f"<{BOB}>")
        assert d.local_uri == ALICE
        assert d.target == BOB
        assert d.local_fromto == f"<{ALICE}>;tag={d.local_tag}"
        assert d.peer_fromto == f"<{BOB}>"

    def test_without_peer(self) -> None:
        d = Dialog.create("c1", BOB, None)
        assert d.target is None
        assert d.peer_fromto is None


class TestSetTarget:
    def test_brackets_are_stripped(self) -> None:
        d = Dialog.create("c1", ALICE, None)
        d.set_target("<sip:alice@example.com>")
        assert d.target == "sip:alice@example.com"

    def test_plain_value_is_stored_verbatim(self) -> None:
        d = Dialog.create("c1", ALICE, None)
        d.set_target("sip:alice@example.com;transport=tcp")
        assert d.target == "sip:alice@example.com;transport=tcp"

    def test_none_is_ignored(self) -> None:
        d = Dialog.create("c1", ALICE, BOB)
        d.set_target(None)
        assert d.target == BOB


class TestDialogCreatingMessages:
    def test_response_reverses_record_route(self) -> None:
        d = Dialog.create("c1", ALICE, BOB)
        resp = MessageParser.parse(
            make_response(
                200,
                to_tag="bobtag",
                contact="<sip:bob@10.0.0.3:5062>",
                record_routes=ROUTES,
            )
        )
        d.apply_dialog_creating_response(resp)

        assert d.established
        assert d.route_set == list(reversed(ROUTES))
        assert d.target == "sip:bob@10.0.0.3:5062"
        assert d.peer_tag == "bobtag"
        assert d.peer_fromto == f"<{BOB}>;tag=bobtag"

    def test_request_keeps_record_route_order(self) -> None:
        d = Dialog.create("c1", BOB, None)
        req = MessageParser.parse(
            make_request("INVITE", from_tag="alicetag", record_routes=ROUTES)
        )
        d.apply_dialog_creating_request(req)

        assert d.route_set == ROUTES
        assert d.target == "sip:alice@10.0.0.2:5060"
        assert d.peer_uri == ALICE
        assert d.peer_tag == "alicetag"

    def test_comma_joined_record_route(self) -> None:
        d = Dialog.create("c1", ALICE, BOB)
        resp = MessageParser.parse(
            make_response(200, to_tag="t", record_routes=[", ".join(ROUTES)])
        )
        d.apply_dialog_creating_response(resp)
        assert d.route_set == list(reversed(ROUTES))

    def test_missing_record_route_keeps_route_set(self) -> None:
        d = Dialog.create("c1", ALICE, BOB)
        d.route_set = ["<sip:p9;lr>"]
        d.apply_dialog_creating_response(MessageParser.parse(make_response(200, to_tag="t")))
        assert d.route_set == ["<sip:p9;lr>"]

    def test_missing_contact_keeps_target(self) -> None:
        d = Dialog.create("c1", ALICE, BOB)
        d.apply_dialog_creating_response(MessageParser.parse(make_response(200, to_tag="t")))
        assert d.target == BOB

    def test_first_contact_becomes_target(self) -> None:
        d = Dialog.create("c1", ALICE, BOB)
        resp = MessageParser.parse(
            make_response(200, to_tag="t", contact="<sip:bob@h1>, <sip:bob@h2>")
        )
        d.apply_dialog_creating_response(resp)
        assert d.target == "sip:bob@h1"

    def test_update_sequence(self) -> None:
        d = Dialog.create("c1", BOB, None)
        d.update_sequence(41)
        assert d.sequence.number == 41
