"""Per-caller request ceiling for the chat endpoints.

Each caller (client address) gets a fixed window of ``window_seconds`` in
which at most ``requests_per_minute`` chat requests are accepted. Counters
live in process memory; multiple workers each enforce their own ceiling.
"""

import time
from dataclasses import dataclass
from typing import Dict


class RateLimitExceeded(Exception):
    """Raised when a caller exceeds the request ceiling."""

    def __init__(self, caller: str, detail: str) -> None:
        self.caller = caller
        self.detail = detail
        super().__init__(detail)


@dataclass
class _Window:
    opened_at: float
    count: int = 0

    def expired(self, now: float, length: float) -> bool:
        return now - self.opened_at >= length


class RateLimiter:
    """Fixed-window limiter keyed by caller.

    Expired windows are swept at most once per window length, so the table
    only holds callers seen during the last window.
    """

    def __init__(self, requests_per_minute: int = 60, window_seconds: float = 60.0) -> None:
        self.requests_per_minute = requests_per_minute
        self.window_seconds = window_seconds
        self._windows: Dict[str, _Window] = {}
        self._next_sweep = 0.0

    @property
    def tracked_callers(self) -> int:
        return len(self._windows)

    def check(self, caller: str) -> None:
        """Admit one request from caller or reject it.

        Raises:
            RateLimitExceeded: If the caller already used up its window.
        """
        now = time.time()
        if now >= self._next_sweep:
            self._sweep(now)

        window = self._windows.get(caller)
        if window is None or window.expired(now, self.window_seconds):
            window = _Window(opened_at=now)
            self._windows[caller] = window

        if window.count >= self.requests_per_minute:
            raise RateLimitExceeded(
                caller,
                "Too many requests from {}, please try again later ({} req/min).".format(
                    caller, self.requests_per_minute
                ),
            )
        window.count += 1

    def _sweep(self, now: float) -> None:
        self._windows = {
            caller: window
            for caller, window in self._windows.items()
            if not window.expired(now, self.window_seconds)
        }
        self._next_sweep = now + self.window_seconds
