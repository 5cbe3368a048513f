"""Dashboard service - read-only views over the stored banking data."""

import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from models import Account, BankConnection, SyncLogEntry, Transaction, User
from schemas.dashboard import (
    AccountResponse,
    ConnectionResponse,
    DashboardResponse,
    SyncLogResponse,
    TransactionResponse,
)
from services.storage_service import StorageService

logger = logging.getLogger(__name__)

RECENT_TRANSACTIONS_LIMIT = 50


class DashboardService:
    """Builds dashboard responses for one user, identified by email."""

    @staticmethod
    def get_dashboard(db: Session, email: str) -> DashboardResponse:
        """Accounts, connections, recent transactions and balance totals.

        ``total_balance`` sums every account regardless of currency;
        ``balances_by_currency`` keeps the per-currency split.
        """
        user = StorageService.get_user_by_email(db, email)
        if user is None:
            return DashboardResponse(
                accounts=[],
                connections=[],
                recent_transactions=[],
                balances_by_currency={},
                total_balance=Decimal("0"),
            )

        accounts = (
            db.query(Account)
            .filter(Account.user_id == user.id)
            .order_by(Account.created_at.desc())
            .all()
        )

        balances: dict[str, Decimal] = {}
        total = Decimal("0")
        for account in accounts:
            balance = Decimal(account.balance or 0)
            balances[account.currency_code] = balances.get(account.currency_code, Decimal("0")) + balance
            total += balance

        account_counts: dict[str, int] = {}
        for account in accounts:
            account_counts[account.connection_id] = account_counts.get(account.connection_id, 0) + 1

        connections = (
            db.query(BankConnection)
            .filter(BankConnection.user_id == user.id)
            .order_by(BankConnection.created_at.desc())
            .all()
        )
        last_sync = max(
            (c.last_sync_at for c in connections if c.last_sync_at is not None),
            default=None,
        )

        return DashboardResponse(
            accounts=[AccountResponse.model_validate(a) for a in accounts],
            connections=[
                ConnectionResponse(
                    id=c.id,
                    provider_code=c.provider_code,
                    provider_name=c.provider_name,
                    status=c.status,
                    last_success_at=c.last_success_at,
                    last_sync_at=c.last_sync_at,
                    account_count=account_counts.get(c.id, 0),
                )
                for c in connections
            ],
            recent_transactions=DashboardService._transactions_for(
                db, user, RECENT_TRANSACTIONS_LIMIT
            ),
            balances_by_currency=balances,
            total_balance=total,
            last_sync_at=last_sync,
        )

    @staticmethod
    def _transactions_for(db: Session, user: User, limit: int) -> list[TransactionResponse]:
        rows = (
            db.query(Transaction, Account.name)
            .join(Account, Transaction.account_id == Account.id)
            .filter(Account.user_id == user.id)
            .order_by(Transaction.made_on.desc(), Transaction.id)
            .limit(limit)
            .all()
        )
        return [
            TransactionResponse(
                id=t.id,
                account_id=t.account_id,
                account_name=account_name,
                amount=t.amount,
                currency_code=t.currency_code,
                made_on=t.made_on,
                description=t.description,
                category=t.category,
                status=t.status,
                duplicated=t.duplicated,
            )
            for t, account_name in rows
        ]

    @staticmethod
    def list_transactions(db: Session, email: str, limit: int = 100) -> list[TransactionResponse]:
        """Most recent transactions across all of the user's accounts."""
        user = StorageService.get_user_by_email(db, email)
        if user is None:
            return []
        return DashboardService._transactions_for(db, user, limit)

    @staticmethod
    def list_sync_logs(db: Session, email: str, limit: int = 50) -> list[SyncLogResponse]:
        """Most recent sync log entries, newest first."""
        user = StorageService.get_user_by_email(db, email)
        if user is None:
            return []
        entries = (
            db.query(SyncLogEntry)
            .filter(SyncLogEntry.user_id == user.id)
            .order_by(SyncLogEntry.created_at.desc())
            .limit(limit)
            .all()
        )
        return [SyncLogResponse.model_validate(e) for e in entries]
