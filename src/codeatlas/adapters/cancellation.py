"""Cooperative cancellation with deadlines.

Every adapter receives its own token, parented to the run token. A token is
cancelled when it is cancelled explicitly, when its deadline passes, or
when any ancestor is cancelled.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

# Granularity of deadline/parent polling inside wait()
_POLL_SECONDS = 0.05


class CancellationToken:
    def __init__(
        self,
        deadline: Optional[float] = None,
        parent: Optional[CancellationToken] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            deadline: Absolute time on ``clock`` after which the token reads cancelled
            parent: Token whose cancellation propagates to this one
            clock: Monotonic time source
        """
        self._event = threading.Event()
        self._reason: Optional[str] = None
        self._lock = threading.Lock()
        self.deadline = deadline
        self.parent = parent
        self._clock = clock

    def cancel(self, reason: str = "cancelled") -> None:
        with self._lock:
            if self._reason is None:
                self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self.deadline is not None and self._clock() >= self.deadline:
            self.cancel("deadline")
            return True
        if self.parent is not None and self.parent.cancelled:
            self.cancel(self.parent.reason or "cancelled")
            return True
        return False

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def remaining(self) -> Optional[float]:
        """Seconds until the nearest deadline in the chain, None when unbounded."""
        remaining = None
        token: Optional[CancellationToken] = self
        now = self._clock()
        while token is not None:
            if token.deadline is not None:
                left = max(0.0, token.deadline - now)
                remaining = left if remaining is None else min(remaining, left)
            token = token.parent
        return remaining

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or ``timeout`` elapses. Returns ``cancelled``."""
        end = None if timeout is None else self._clock() + timeout
        while not self.cancelled:
            step = _POLL_SECONDS
            if end is not None:
                left = end - self._clock()
                if left <= 0:
                    return False
                step = min(step, left)
            self._event.wait(step)
        return True

    def child(self, deadline: Optional[float] = None) -> CancellationToken:
        return CancellationToken(deadline=deadline, parent=self, clock=self._clock)
