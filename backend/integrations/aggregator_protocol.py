"""Aggregator protocol definitions.

This module defines the normalized records the Salt Edge client returns and
the interface the connection and sync services depend on. Services never
see raw aggregator JSON; everything is mapped to these dataclasses first.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol


ACTIVE_STATUS = "active"


class ConnectionStage(str, Enum):
    """Stage reported by webhooks and the browser callback."""

    SUCCESS = "success"
    ERROR = "error"
    FETCHING = "fetching"
    INTERACTIVE = "interactive"


class LifecycleState(str, Enum):
    """Local view of where a bank connection is in its lifecycle.

    ``ACTIVE`` is the only state from which data sync is permitted.
    """

    NONE = "none"
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    DISABLED = "disabled"
    ERROR = "error"

    @classmethod
    def from_remote_status(cls, status: str | None) -> "LifecycleState":
        """Map an aggregator connection status to a lifecycle state.

        Unknown statuses are treated as not yet usable (``PENDING``); the raw
        value is still stored verbatim on the connection record.
        """
        normalized = (status or "").lower()
        if normalized == "active":
            return cls.ACTIVE
        if normalized == "inactive":
            return cls.INACTIVE
        if normalized == "disabled":
            return cls.DISABLED
        return cls.PENDING


@dataclass
class ProviderCustomer:
    """A customer record at the aggregator."""

    id: str  # Aggregator's customer id
    identifier: str  # Caller-chosen unique identifier
    secret: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class ProviderConnection:
    """A connection (authorized institution link) at the aggregator."""

    id: str
    customer_id: str
    status: str  # Verbatim: "active", "inactive", "disabled", or anything else
    provider_code: str | None = None
    provider_name: str | None = None
    created_at: datetime | None = None
    last_success_at: datetime | None = None
    next_refresh_possible_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE_STATUS


@dataclass
class ProviderAccount:
    """A financial account under a connection."""

    id: str
    connection_id: str
    name: str
    nature: str | None
    balance: Decimal
    currency_code: str
    iban: str | None = None
    account_number: str | None = None
    sort_code: str | None = None
    swift_code: str | None = None
    raw_data: dict | None = None  # Raw aggregator response for debugging


@dataclass
class ProviderTransaction:
    """A posted or pending movement on an account.

    ``amount`` is signed; the sign encodes credit (positive) or debit.
    """

    id: str
    account_id: str
    amount: Decimal
    currency_code: str
    made_on: date
    description: str | None = None
    category: str | None = None
    mode: str | None = None  # "normal" | "fee" | "transfer"
    status: str | None = None  # "posted" | "pending"
    duplicated: bool = False
    balance_snapshot: Decimal | None = None
    posting_date: date | None = None
    merchant_id: str | None = None
    raw_data: dict | None = None


@dataclass
class ProviderInfo:
    """A financial institution supported by the aggregator."""

    code: str
    name: str
    country_code: str | None = None
    mode: str | None = None
    status: str | None = None
    logo_url: str | None = None


@dataclass
class ConnectSession:
    """A hosted consent session the user is redirected to."""

    connect_url: str
    expires_at: datetime | None = None


@dataclass
class ItemFailure:
    """One item that could not be stored during a sync."""

    item_id: str
    error: str


@dataclass
class SyncResult:
    """Outcome of one best-effort sync of a connection.

    Individual account/transaction failures are collected rather than
    raised; the caller decides whether a non-empty ``errors`` list means
    the run failed.
    """

    connection_id: str
    accounts: list[ProviderAccount] = field(default_factory=list)
    transactions: list[ProviderTransaction] = field(default_factory=list)
    failed: list[ItemFailure] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def succeeded(self) -> list[str]:
        """Ids of every account and transaction that was stored."""
        return [a.id for a in self.accounts] + [t.id for t in self.transactions]

    @property
    def ok(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        text = (
            f"{len(self.accounts)} accounts, {len(self.transactions)} transactions synced"
        )
        if self.errors:
            text += f", {len(self.errors)} errors"
        return text


class AggregatorClient(Protocol):
    """Interface the lifecycle and sync services require from the aggregator client."""

    def create_customer(self, identifier: str) -> ProviderCustomer:
        ...

    def get_customer(self, customer_id: str) -> ProviderCustomer:
        ...

    def create_connection_session(
        self,
        customer_id: str,
        provider_code: str | None = None,
        consent_scopes: list[str] | None = None,
        return_url: str | None = None,
        locale: str | None = None,
        widget_options: dict[str, Any] | None = None,
    ) -> ConnectSession:
        ...

    def get_connection(self, connection_id: str) -> ProviderConnection:
        ...

    def get_accounts(self, connection_id: str) -> list[ProviderAccount]:
        ...

    def get_connection_transactions(self, connection_id: str) -> list[ProviderTransaction]:
        ...

    def refresh_connection(self, connection_id: str, return_url: str) -> ConnectSession:
        ...

    def reconnect_connection(self, connection_id: str, return_url: str) -> ConnectSession:
        ...

    def delete_connection(self, connection_id: str) -> bool:
        ...
