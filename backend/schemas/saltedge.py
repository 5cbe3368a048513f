"""Pydantic schemas for the Salt Edge connection endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class WebhookData(BaseModel):
    """The ``data`` object of a Salt Edge notification."""

    connection_id: Optional[str] = None
    customer_id: Optional[str] = None
    stage: Optional[str] = None
    api_stage: Optional[str] = None
    secret: Optional[str] = None
    error_message: Optional[str] = None

    model_config = {"extra": "ignore"}


class WebhookPayload(BaseModel):
    data: WebhookData


class WebhookAck(BaseModel):
    received: bool = True


class ConnectRequest(BaseModel):
    """Request body for opening a consent session."""

    provider_code: Optional[str] = None


class ConnectResponse(BaseModel):
    connect_url: str
    expires_at: Optional[datetime] = None
    customer_id: str
    test_status: Optional[dict[str, Any]] = None


class RefreshRequest(BaseModel):
    """Request body for re-opening a session on an existing connection."""

    type: str = "refresh"  # "refresh" | "reconnect"


class RefreshResponse(BaseModel):
    connect_url: str
    expires_at: Optional[datetime] = None
    type: str


class ProviderResponse(BaseModel):
    """A bank the user can connect."""

    code: str
    name: str
    country_code: Optional[str] = None
    mode: Optional[str] = None
    status: Optional[str] = None
    logo_url: Optional[str] = None

    model_config = {"from_attributes": True}


class ItemFailureResponse(BaseModel):
    item_id: str
    error: str


class SyncResultResponse(BaseModel):
    """Summary of one sync run."""

    connection_id: str
    status: str  # "success" | "error"
    accounts_synced: int
    transactions_synced: int
    errors: list[str]
    failed: list[ItemFailureResponse]
    duration_ms: int


class TransactionsSummary(BaseModel):
    total_count: int
    displayed_count: int
    date_range: dict[str, Optional[str]]


class ConnectionInfo(BaseModel):
    id: str
    provider_name: Optional[str] = None
    status: str
    last_success_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ConnectionDataResponse(BaseModel):
    """Live accounts and transactions for one connection, display-formatted.

    A failure fetching one part is reported in its ``*_error`` field while
    the other part is still returned.
    """

    connection: ConnectionInfo
    accounts: Optional[list[dict[str, Any]]] = None
    accounts_error: Optional[str] = None
    transactions: Optional[list[dict[str, Any]]] = None
    transactions_summary: Optional[TransactionsSummary] = None
    transactions_error: Optional[str] = None


class StatusActionRequest(BaseModel):
    """Diagnostics maintenance action."""

    action: str  # "reset" | "clear_logs" | "clear_cache" | "reset_all"


class ErrorResponse(BaseModel):
    """Envelope for aggregator errors returned to API callers."""

    error: str
    code: str
    retryable: bool
    details: Optional[Any] = None
