"""Time-bounded cache of aggregator customers, keyed by identifier."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from integrations.aggregator_protocol import ProviderCustomer

logger = logging.getLogger(__name__)

DEFAULT_TTL_HOURS = 24


@dataclass
class _Entry:
    customer: ProviderCustomer
    created_at: float
    ttl_seconds: float


class CustomerCache:
    """Identifier -> ProviderCustomer with a per-entry TTL.

    Eviction is lazy: an expired entry is dropped the next time it is read.
    """

    def __init__(
        self,
        ttl_hours: float = DEFAULT_TTL_HOURS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_hours * 3600
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def get(self, identifier: str) -> ProviderCustomer | None:
        with self._lock:
            entry = self._entries.get(identifier)
            if entry is None:
                return None
            if self._clock() >= entry.created_at + entry.ttl_seconds:
                del self._entries[identifier]
                logger.debug("Customer cache entry expired: %s", identifier)
                return None
            return entry.customer

    def set(
        self,
        identifier: str,
        customer: ProviderCustomer,
        ttl_hours: float | None = None,
    ) -> None:
        ttl_seconds = self.ttl_seconds if ttl_hours is None else ttl_hours * 3600
        with self._lock:
            self._entries[identifier] = _Entry(customer, self._clock(), ttl_seconds)
        logger.debug("Cached customer %s for %s", customer.id, identifier)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Customer cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
