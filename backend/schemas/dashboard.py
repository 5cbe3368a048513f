"""Pydantic schemas for dashboard reads."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict


class AccountResponse(BaseModel):
    """A stored bank account."""

    id: str
    connection_id: str
    name: str
    nature: Optional[str] = None
    balance: Decimal
    currency_code: str
    iban: Optional[str] = None
    account_number: Optional[str] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TransactionResponse(BaseModel):
    """A stored transaction with its account's display name."""

    id: str
    account_id: str
    account_name: Optional[str] = None
    amount: Decimal
    currency_code: str
    made_on: date
    description: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    duplicated: bool = False

    model_config = ConfigDict(from_attributes=True)


class ConnectionResponse(BaseModel):
    """A stored bank connection."""

    id: str
    provider_code: Optional[str] = None
    provider_name: Optional[str] = None
    status: str
    last_success_at: Optional[datetime] = None
    last_sync_at: Optional[datetime] = None
    account_count: int = 0


class SyncLogResponse(BaseModel):
    id: str
    connection_id: Optional[str] = None
    action: str
    status: str
    message: Optional[str] = None
    duration_ms: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DashboardResponse(BaseModel):
    """Everything the dashboard page shows for the current user."""

    accounts: list[AccountResponse]
    connections: list[ConnectionResponse]
    recent_transactions: list[TransactionResponse]
    balances_by_currency: dict[str, Decimal]
    total_balance: Decimal
    last_sync_at: Optional[datetime] = None


class DeleteUserDataResponse(BaseModel):
    deleted: bool
