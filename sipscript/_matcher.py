"""
Classification of inbound messages against what a script expects.

Three matching styles are supported:

- ``match_request``: method pattern, regular expression search
- ``match_response``: status pattern, regular expression search against the
  stringified code, with a list of codes to skip
- ``match_any_of``: an ordered list of candidates compared exactly; the
  first candidate that fits wins
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, NamedTuple, Optional, Sequence, Union

if TYPE_CHECKING:
    from ._models._message import SIPMessage


@dataclass(frozen=True)
class MethodCandidate:
    """Expect a request with this method. Requests create dialogs by default."""

    method: str
    dialog_creating: Optional[bool] = None

    @property
    def creates_dialog(self) -> bool:
        return True if self.dialog_creating is None else self.dialog_creating

    def matches(self, msg: SIPMessage) -> bool:
        return msg.is_request and msg.method == self.method

    def __str__(self) -> str:
        return self.method


@dataclass(frozen=True)
class StatusCandidate:
    """Expect a response with this status code. Responses do not create dialogs by default."""

    status: str
    dialog_creating: Optional[bool] = None

    @property
    def creates_dialog(self) -> bool:
        return False if self.dialog_creating is None else self.dialog_creating

    def matches(self, msg: SIPMessage) -> bool:
        return msg.is_response and str(msg.status_code) == self.status

    def __str__(self) -> str:
        return self.status


Candidate = Union[MethodCandidate, StatusCandidate]

# "INVITE", 200, ["ACK"], ("ACK", False), [200, True], or a Candidate
CandidateLike = Union[Candidate, str, int, Sequence[Union[str, int, bool, None]]]


class MatchResult(NamedTuple):
    """Outcome of matching a response."""

    matched: bool
    should_retry: bool = False


class AnyOfMatch(NamedTuple):
    """The candidate that matched and whether the message creates the dialog."""

    candidate: Candidate
    dialog_creating: bool


class InboundMatcher:
    """Decides whether a received message is the one a script waits for."""

    @staticmethod
    def match_request(msg: SIPMessage, method_pattern: str) -> bool:
        """
        True if ``msg`` is a request whose method matches ``method_pattern``.

        The pattern is searched, not anchored: "INV" matches INVITE unless the
        pattern itself anchors ("^INVITE$").
        """
        return msg.is_request and re.search(method_pattern, msg.method) is not None

    @staticmethod
    def match_response(
        msg: SIPMessage,
        code_pattern: Union[str, int],
        ignored_codes: Iterable[Union[str, int]] = (),
    ) -> MatchResult:
        """
        Match ``msg`` against a status code pattern.

        A response whose code is listed in ``ignored_codes`` does not match
        but asks the caller to wait for the next message instead.
        """
        if not msg.is_response:
            return MatchResult(False)

        code = str(msg.status_code)
        if code in {str(c) for c in ignored_codes}:
            return MatchResult(False, should_retry=True)

        return MatchResult(re.search(str(code_pattern), code) is not None)

    @staticmethod
    def candidate(entry: CandidateLike) -> Candidate:
        """
        Normalise one expected-message entry.

        A string names a request method, an integer a response status. A
        one or two item sequence adds an explicit dialog-creating flag.
        """
        if isinstance(entry, (MethodCandidate, StatusCandidate)):
            return entry

        dialog_creating = None
        if isinstance(entry, (list, tuple)):
            if not 1 <= len(entry) <= 2:
                raise ValueError(f"Expected (message, dialog_creating), got {entry!r}")
            what = entry[0]
            if len(entry) == 2:
                dialog_creating = entry[1]
        else:
            what = entry

        if isinstance(what, str):
            return MethodCandidate(what, dialog_creating)
        if isinstance(what, int) and not isinstance(what, bool):
            return StatusCandidate(str(what), dialog_creating)
        raise TypeError(f"Expected a method name or a status code, got {what!r}")

    @classmethod
    def match_any_of(
        cls, msg: SIPMessage, candidates: Iterable[CandidateLike]
    ) -> Optional[AnyOfMatch]:
        """
        Find the first candidate ``msg`` fits.

        Returns:
            The matching candidate and its dialog-creating flag, or None
        """
        for entry in candidates:
            candidate = cls.candidate(entry)
            if candidate.matches(msg):
                return AnyOfMatch(candidate, candidate.creates_dialog)
        return None


__all__ = [
    "MethodCandidate",
    "StatusCandidate",
    "MatchResult",
    "AnyOfMatch",
    "InboundMatcher",
]
