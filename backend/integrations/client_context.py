"""Process-wide shared state for the Salt Edge client."""

from dataclasses import dataclass, field
from functools import lru_cache

from config import settings
from integrations.customer_cache import CustomerCache
from integrations.rate_limiter import RateLimiter
from integrations.telemetry import AuditLog, MetricsRecorder, SandboxQuota


@dataclass
class ClientContext:
    """Rate limiter, customer cache, audit log, metrics and sandbox quota.

    One instance per process is shared by every SaltEdgeClient so limits and
    caches span requests. Tests build their own instance.
    """

    rate_limiter: RateLimiter
    customer_cache: CustomerCache = field(default_factory=CustomerCache)
    audit_log: AuditLog = field(default_factory=AuditLog)
    metrics: MetricsRecorder = field(default_factory=MetricsRecorder)
    sandbox_quota: SandboxQuota = field(default_factory=SandboxQuota)

    def reset(self) -> None:
        self.rate_limiter.reset()
        self.customer_cache.clear()
        self.audit_log.clear()
        self.metrics.reset()
        self.sandbox_quota.reset()


def build_client_context() -> ClientContext:
    """Build a context sized from the current settings."""
    max_requests = (
        settings.SALTEDGE_RATE_LIMIT_LIVE
        if settings.saltedge_live
        else settings.SALTEDGE_RATE_LIMIT_PENDING
    )
    return ClientContext(
        rate_limiter=RateLimiter(max_requests=max_requests),
        customer_cache=CustomerCache(ttl_hours=settings.SALTEDGE_CUSTOMER_CACHE_TTL_HOURS),
    )


@lru_cache
def get_client_context() -> ClientContext:
    return build_client_context()
