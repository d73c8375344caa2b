"""In-process tracking of provider rate limits per destination."""

from __future__ import annotations

import threading
import time
from typing import Callable

from .metrics import CHAT_RATE_LIMIT_BLOCKS_ACTIVE


class RateLimitTracker:
    """Remembers, per destination id, the instant before which sends are skipped.

    A destination is either open or blocked until a reset instant. Blocks are
    created from provider rate-limit responses and expire lazily: the first
    check at or after the reset instant drops it, along with any other entry
    whose window has passed. State lives for the lifetime of the process only.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._reset_at: dict[str, float] = {}
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        expired = [key for key, reset_at in self._reset_at.items() if now >= reset_at]
        for key in expired:
            del self._reset_at[key]
        if expired:
            CHAT_RATE_LIMIT_BLOCKS_ACTIVE.dec(len(expired))

    def is_blocked(self, destination_id: str) -> bool:
        with self._lock:
            self._prune(self._clock())
            return destination_id in self._reset_at

    def record_limit(self, destination_id: str, retry_after_seconds: float) -> None:
        with self._lock:
            now = self._clock()
            self._prune(now)
            if destination_id not in self._reset_at:
                CHAT_RATE_LIMIT_BLOCKS_ACTIVE.inc()
            self._reset_at[destination_id] = now + max(retry_after_seconds, 0.0)

    def clear(self) -> None:
        with self._lock:
            CHAT_RATE_LIMIT_BLOCKS_ACTIVE.dec(len(self._reset_at))
            self._reset_at.clear()


_TRACKER = RateLimitTracker()


def default_tracker() -> RateLimitTracker:
    return _TRACKER


def is_blocked(destination_id: str) -> bool:
    """True while ``destination_id`` is inside a provider rate-limit window."""

    return _TRACKER.is_blocked(destination_id)


def record_limit(destination_id: str, retry_after_seconds: float) -> None:
    """Block ``destination_id`` for ``retry_after_seconds`` from now."""

    _TRACKER.record_limit(destination_id, retry_after_seconds)
