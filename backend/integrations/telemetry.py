"""In-process audit log, call metrics and sandbox quota for the aggregator client.

These back the diagnostics endpoint. They hold per-process state only and
are reset on restart.
"""

import json
import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("integrations.saltedge")

AUDIT_LOG_CAPACITY = 100
METRICS_WINDOW = 50
SANDBOX_TEST_QUOTA = 10

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass
class AuditEntry:
    action: str
    level: str = "info"  # "debug" | "info" | "warn" | "error"
    method: str | None = None
    endpoint: str | None = None
    duration_ms: int | None = None
    status: str | None = None  # "success" | "error" | "pending"
    details: dict[str, Any] | None = None
    error: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class AuditLog:
    """Ring buffer of the most recent aggregator interactions.

    Every entry is also written to the ``integrations.saltedge`` logger at
    the matching level.
    """

    def __init__(self, capacity: int = AUDIT_LOG_CAPACITY):
        self._entries: deque[AuditEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def record(self, entry: AuditEntry) -> AuditEntry:
        with self._lock:
            self._entries.append(entry)

        message = "[SaltEdge] %s"
        args: list[Any] = [entry.action]
        if entry.duration_ms is not None:
            message += " (%dms)"
            args.append(entry.duration_ms)
        if entry.details:
            message += " - %s"
            args.append(json.dumps(entry.details, default=str))
        if entry.error:
            message += " error=%s"
            args.append(entry.error)
        logger.log(_LEVELS.get(entry.level, logging.INFO), message, *args)
        return entry

    def entries(
        self,
        level: str | None = None,
        action: str | None = None,
        last_n: int | None = None,
    ) -> list[AuditEntry]:
        """Return recorded entries, oldest first.

        Args:
            level: Only entries at exactly this level.
            action: Only entries whose action contains this substring.
            last_n: Keep only the newest ``last_n`` after filtering.
        """
        with self._lock:
            result = list(self._entries)
        if level:
            result = [e for e in result if e.level == level]
        if action:
            result = [e for e in result if action in e.action]
        if last_n is not None:
            result = result[-last_n:] if last_n > 0 else []
        return result

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class MetricsRecorder:
    """Success/failure counters and a sliding window of response times."""

    def __init__(self, window: int = METRICS_WINDOW):
        self._lock = threading.Lock()
        self._window = window
        self.reset()

    def record(self, duration_ms: float, success: bool) -> None:
        with self._lock:
            self.total_requests += 1
            if success:
                self.successful_requests += 1
            else:
                self.failed_requests += 1
            self._response_times.append(duration_ms)

    @property
    def average_response_time(self) -> float:
        with self._lock:
            if not self._response_times:
                return 0.0
            return sum(self._response_times) / len(self._response_times)

    @property
    def success_rate(self) -> float:
        """Percentage of successful calls, 0 when nothing has been recorded."""
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests * 100

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            response_times = list(self._response_times)
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "average_response_time": self.average_response_time,
            "success_rate": self.success_rate,
            "response_times": response_times,
        }

    def reset(self) -> None:
        with self._lock:
            self.total_requests = 0
            self.successful_requests = 0
            self.failed_requests = 0
            self._response_times: deque[float] = deque(maxlen=self._window)


class SandboxQuota:
    """Counts connection attempts against the pending-mode test allowance.

    Salt Edge apps in pending status get a small number of live test
    connections; once ``used`` reaches ``total`` further attempts are not
    recorded.
    """

    def __init__(self, total: int = SANDBOX_TEST_QUOTA):
        self.total = total
        self._lock = threading.Lock()
        self.reset()

    def record(self, action: str, provider_code: str | None = None, success: bool = True) -> dict:
        with self._lock:
            if self.used < self.total:
                self.used += 1
                self.history.append(
                    {
                        "timestamp": datetime.now(timezone.utc).isoformat(),
                        "action": action,
                        "provider": provider_code,
                        "success": success,
                    }
                )
        return self.status()

    @property
    def remaining(self) -> int:
        return self.total - self.used

    def status(self) -> dict:
        with self._lock:
            return {
                "total_tests": self.total,
                "used_tests": self.used,
                "remaining_tests": self.total - self.used,
                "history": list(self.history),
            }

    def reset(self) -> None:
        with self._lock:
            self.used = 0
            self.history: list[dict] = []
