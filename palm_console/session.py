"""
Idle sign-out for privileged sessions.

IdleLogout keeps one wall-clock timer per session. It is armed only for the
ADMIN role on paths that are not excluded; any activity event restarts the
countdown. When it runs out the session is marked expired and the optional
sign_out callable is invoked on the timer thread.

UI frameworks that cannot be touched from a background thread (Streamlit)
should poll `expired` on each script run instead of relying on sign_out.
"""

import functools
import logging
import threading
from typing import Callable, Iterable

from .config import ADMIN_ROLE, IDLE_ACTIVITY_EVENTS

logger = logging.getLogger(__name__)


class IdleLogout:
    """Inactivity timer that signs out an admin after `timeout_minutes`.

    Call start() whenever the role or path changes, record_activity() for
    every input event and stop() on teardown.
    """

    def __init__(
        self,
        sign_out: Callable[[], None] | None = None,
        timeout_minutes: float = 10,
        exclude_paths: Iterable[str] = ("/login",),
        timer_factory: Callable[[float, Callable], threading.Timer] = threading.Timer,
    ):
        if timeout_minutes <= 0:
            raise ValueError("timeout_minutes must be greater than 0")
        self.sign_out = sign_out
        self.timeout_seconds = timeout_minutes * 60
        self.exclude_paths = tuple(exclude_paths)
        self._timer_factory = timer_factory
        self._timer = None
        self._generation = 0
        self._lock = threading.Lock()
        self._armed = False
        self._expired = threading.Event()

    @property
    def armed(self) -> bool:
        return self._armed

    @property
    def expired(self) -> bool:
        """True once the countdown ran out, until the next start()."""
        return self._expired.is_set()

    def applies_to(self, role: str | None, path: str) -> bool:
        if role != ADMIN_ROLE:
            return False
        return not any(path.startswith(p) for p in self.exclude_paths)

    def start(self, role: str | None, path: str) -> bool:
        """(Re)arm for the given role and path. Returns whether the timer is armed."""
        self.stop()
        self._expired.clear()
        if not self.applies_to(role, path):
            logger.debug("Idle logout not armed for role=%s path=%s", role, path)
            return False
        with self._lock:
            self._armed = True
            self._reset_locked()
        logger.info("Idle logout armed: %.0f s on %s", self.timeout_seconds, path)
        return True

    def record_activity(self, event: str) -> bool:
        """Restart the countdown for a recognised activity event."""
        if event not in IDLE_ACTIVITY_EVENTS:
            return False
        with self._lock:
            if not self._armed:
                return False
            self._reset_locked()
        return True

    def stop(self) -> None:
        with self._lock:
            self._armed = False
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _reset_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._generation += 1
        self._timer = self._timer_factory(
            self.timeout_seconds, functools.partial(self._expire, self._generation)
        )
        self._timer.daemon = True
        self._timer.start()

    def _expire(self, generation: int) -> None:
        with self._lock:
            # a replaced timer may still fire after cancel()
            if not self._armed or generation != self._generation:
                return
            self._armed = False
            self._timer = None
            self._expired.set()
        logger.info("Session idle for %.0f s; signing out", self.timeout_seconds)
        if self.sign_out is not None:
            self.sign_out()
