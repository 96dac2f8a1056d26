"""
Timer-driven retransmission for unreliable transports.

Each scheduled retransmission runs on its own daemon thread and owns a
cancellation token. The scheduler remembers only the most recently started
token as "current"; :meth:`RetransmissionScheduler.cancel_current` stops that
one and nothing else. A retransmission started before it keeps firing until
it hits the T2 ceiling on its own (or the call ends), so two overlapping
retransmissions on one call cannot be cancelled independently.

Reaching the ceiling is reported through the ``on_failure`` callback, because
no caller is waiting on the timer thread.
"""

from __future__ import annotations

import secrets
import threading
from typing import TYPE_CHECKING, Callable, Dict, Optional

from ._types import RetransmissionExceededError, TransportAddress, TransportError
from ._utils import logger

if TYPE_CHECKING:
    from ._transports._base import BaseConnection


FailureCallback = Callable[[RetransmissionExceededError], None]


class RetransmissionToken:
    """Cancellation token for one scheduled retransmission."""

    __slots__ = ("key", "_cancelled")

    def __init__(self, key: Optional[str] = None) -> None:
        self.key = key or secrets.token_hex(16)
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; True if cancelled meanwhile."""
        return self._cancelled.wait(timeout)

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"<RetransmissionToken({self.key[:8]}, {state})>"


class RetransmissionScheduler:
    """
    Starts and cancels retransmission timers for one call.

    Timer algorithm (RFC 3261 Timer A/E style): wait T1, then while the
    token is active resend and double the wait. When the doubled wait
    reaches T2 the retransmission gives up and reports
    RetransmissionExceededError. With T1=0.5 and T2=32 resends happen at
    roughly 0.5, 1.5, 3.5, 7.5, 15.5 and 31.5 seconds.
    """

    def __init__(
        self,
        t1: float = 0.5,
        t2: float = 32.0,
        on_failure: Optional[FailureCallback] = None,
        name: str = "",
    ) -> None:
        self.t1 = t1
        self.t2 = t2
        self.on_failure = on_failure
        self.name = name

        self._lock = threading.Lock()
        self._active: Dict[str, RetransmissionToken] = {}
        self._current: Optional[RetransmissionToken] = None

    @property
    def current(self) -> Optional[RetransmissionToken]:
        with self._lock:
            return self._current

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def start_if_needed(
        self,
        connection: BaseConnection,
        data: bytes,
        destination: Optional[TransportAddress],
        enabled: bool,
    ) -> Optional[RetransmissionToken]:
        """
        Start retransmitting ``data`` unless disabled or the transport is reliable.

        The message and destination are captured as they are now; later
        changes on the call do not affect a running retransmission.

        Returns:
            The token of the new retransmission, or None if none was started
        """
        if not enabled or connection.transport.upper() != "UDP":
            return None

        token = RetransmissionToken()
        with self._lock:
            self._active[token.key] = token
            self._current = token

        thread = threading.Thread(
            target=self._run,
            args=(token, connection, data, destination),
            name=f"retrans-{self.name or token.key[:8]}",
            daemon=True,
        )
        thread.start()
        return token

    def cancel_current(self) -> None:
        """Cancel the most recently started retransmission, if any."""
        with self._lock:
            token = self._current
            self._current = None
            if token is not None:
                self._active.pop(token.key, None)
        if token is not None:
            token.cancel()

    def cancel_all(self) -> None:
        """Cancel every retransmission this scheduler started."""
        with self._lock:
            tokens = list(self._active.values())
            self._active.clear()
            self._current = None
        for token in tokens:
            token.cancel()

    def _run(
        self,
        token: RetransmissionToken,
        connection: BaseConnection,
        data: bytes,
        destination: Optional[TransportAddress],
    ) -> None:
        timer = self.t1
        while not token.wait(timer):
            logger.debug(f"Retransmitting on {self.name or 'call'} (waited {timer}s)")
            try:
                connection.send_msg(data, destination)
            except TransportError as e:
                logger.error(f"Retransmission on {self.name or 'call'} stopped: {e}")
                with self._lock:
                    self._active.pop(token.key, None)
                    if self._current is token:
                        self._current = None
                return
            timer *= 2
            if timer >= self.t2:
                self._fail(token, timer)
                return

    def _fail(self, token: RetransmissionToken, timer: float) -> None:
        with self._lock:
            self._active.pop(token.key, None)
            if self._current is token:
                self._current = None

        error = RetransmissionExceededError(
            f"Too many retransmits on {self.name or 'call'}: "
            f"next wait {timer}s reaches T2={self.t2}s without a reply"
        )
        if self.on_failure is not None:
            self.on_failure(error)
        else:
            logger.critical(str(error))


__all__ = ["RetransmissionToken", "RetransmissionScheduler"]
