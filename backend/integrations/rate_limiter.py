"""Fixed-window rate limiter for outbound aggregator calls."""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from integrations.error_translator import ErrorKind, make_error
from integrations.exceptions import AggregatorError

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0
MIN_SPACING_SECONDS = 0.1


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    wait_seconds: float = 0.0
    requests: int = 0  # admissions in the current window when decided


class RateLimiter:
    """Bounds calls to ``max_requests`` per 60-second window.

    The window is fixed: it starts on the first check after the previous one
    expired and the counter resets when it ends. Calls closer together than
    ``min_spacing`` are also refused, with the remaining gap as the wait.

    Route handlers run in FastAPI's thread pool, so every read-modify-write
    of the counters happens under ``_lock``.

    Args:
        max_requests: Admissions allowed per window.
        window_seconds: Window length.
        min_spacing: Minimum seconds between two admitted calls.
        clock: Monotonic time source (injectable for tests).
        sleep: Sleep function used by ``acquire`` (injectable for tests).
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = WINDOW_SECONDS,
        min_spacing: float = MIN_SPACING_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.min_spacing = min_spacing
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._requests = 0
        self._window_ends_at = clock() + window_seconds
        self._last_request_at: float | None = None

    def _roll_window(self, now: float) -> None:
        if now >= self._window_ends_at:
            self._requests = 0
            self._window_ends_at = now + self.window_seconds

    def _decide(self, now: float) -> RateLimitDecision:
        self._roll_window(now)

        if self._requests >= self.max_requests:
            return RateLimitDecision(False, self._window_ends_at - now, self._requests)

        if self._last_request_at is not None:
            elapsed = now - self._last_request_at
            if elapsed < self.min_spacing:
                return RateLimitDecision(False, self.min_spacing - elapsed, self._requests)

        return RateLimitDecision(True, requests=self._requests)

    def check(self) -> RateLimitDecision:
        """Report whether a call would be admitted now, without recording it."""
        with self._lock:
            return self._decide(self._clock())

    def _try_admit(self) -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            decision = self._decide(now)
            if decision.allowed:
                self._requests += 1
                self._last_request_at = now
            return decision

    def acquire(self) -> None:
        """Admit one call, waiting at most once.

        Raises:
            AggregatorError: RATE_LIMIT if the call is still refused after
                waiting the suggested duration.
        """
        decision = self._try_admit()
        if decision.allowed:
            return

        logger.warning(
            "Rate limit reached (%d/%d), waiting %.2fs",
            decision.requests,
            self.max_requests,
            decision.wait_seconds,
        )
        self._sleep(decision.wait_seconds)

        decision = self._try_admit()
        if not decision.allowed:
            wait = math.ceil(decision.wait_seconds)
            raise AggregatorError(
                make_error(
                    ErrorKind.RATE_LIMIT,
                    f"Rate limit exceeded, retry in {wait}s",
                    retryable=True,
                ),
                status_code=429,
            )

    def status(self) -> dict:
        """Counters for the diagnostics endpoint."""
        with self._lock:
            now = self._clock()
            self._roll_window(now)
            return {
                "requests": self._requests,
                "max_requests": self.max_requests,
                "resets_in_seconds": round(max(self._window_ends_at - now, 0.0), 1),
            }

    def reset(self) -> None:
        with self._lock:
            self._requests = 0
            self._window_ends_at = self._clock() + self.window_seconds
            self._last_request_at = None
