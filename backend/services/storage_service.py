"""Storage service - idempotent writes for users, connections, accounts and logs."""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from integrations.aggregator_protocol import (
    ProviderAccount,
    ProviderConnection,
    ProviderCustomer,
    ProviderTransaction,
)
from models import Account, AggregatorCustomer, BankConnection, SyncLogEntry, Transaction, User

logger = logging.getLogger(__name__)


class StorageService:
    """Keyed upserts over the banking tables.

    Every write keys on an id the aggregator assigned (or the user's email),
    so applying the same write twice leaves one row holding the latest
    values. Methods ``flush()``; callers own the commit.
    """

    # ------------------------------------------------------------------
    # Users and customers
    # ------------------------------------------------------------------

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter_by(email=email).first()

    @staticmethod
    def get_or_create_user(db: Session, email: str, name: Optional[str] = None) -> User:
        user = StorageService.get_user_by_email(db, email)
        if user is None:
            user = User(email=email, name=name)
            db.add(user)
            db.flush()
            logger.info("Created user %s", user.id[:8])
        return user

    @staticmethod
    def get_or_create_customer_record(
        db: Session, user: User, customer: ProviderCustomer
    ) -> AggregatorCustomer:
        """Record the remote customer for ``user``, keyed by its remote id."""
        record = (
            db.query(AggregatorCustomer).filter_by(customer_id=customer.id).first()
        )
        if record is None:
            record = AggregatorCustomer(
                user_id=user.id,
                customer_id=customer.id,
                identifier=customer.identifier,
            )
            db.add(record)
        else:
            record.identifier = customer.identifier or record.identifier
        db.flush()
        return record

    @staticmethod
    def find_customer_record(db: Session, customer_id: str) -> Optional[AggregatorCustomer]:
        return db.query(AggregatorCustomer).filter_by(customer_id=customer_id).first()

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    @staticmethod
    def get_connection(db: Session, connection_id: str) -> Optional[BankConnection]:
        return db.get(BankConnection, connection_id)

    @staticmethod
    def get_user_connection(
        db: Session, user_id: str, connection_id: str
    ) -> Optional[BankConnection]:
        """Return the connection only if it belongs to ``user_id``."""
        return (
            db.query(BankConnection)
            .filter_by(id=connection_id, user_id=user_id)
            .first()
        )

    @staticmethod
    def update_connection_record(
        db: Session,
        customer: AggregatorCustomer,
        remote: ProviderConnection,
        last_sync_at: Optional[datetime] = None,
    ) -> BankConnection:
        """Upsert the local connection row from the aggregator's view of it.

        ``status`` is copied verbatim, including values the application
        does not recognise.
        """
        record = db.get(BankConnection, remote.id)
        if record is None:
            record = BankConnection(
                id=remote.id,
                user_id=customer.user_id,
                customer_id=customer.customer_id,
            )
            db.add(record)

        record.status = remote.status
        if remote.provider_code:
            record.provider_code = remote.provider_code
        if remote.provider_name:
            record.provider_name = remote.provider_name
        if remote.last_success_at:
            record.last_success_at = remote.last_success_at
        if last_sync_at is not None:
            record.last_sync_at = last_sync_at
        db.flush()
        return record

    @staticmethod
    def mark_synced(
        db: Session,
        customer: AggregatorCustomer,
        connection: Optional[BankConnection],
        when: Optional[datetime] = None,
    ) -> None:
        """Stamp ``last_sync_at`` and set ``status = active`` after a sync."""
        when = when or datetime.now(timezone.utc)
        customer.last_sync_at = when
        customer.status = "active"
        if connection is not None:
            connection.last_sync_at = when
            connection.status = "active"
        db.flush()

    @staticmethod
    def delete_connection(db: Session, connection: BankConnection) -> None:
        """Delete a connection with its accounts and transactions."""
        db.delete(connection)
        db.flush()

    # ------------------------------------------------------------------
    # Accounts and transactions
    # ------------------------------------------------------------------

    @staticmethod
    def upsert_account(db: Session, user_id: str, remote: ProviderAccount) -> Account:
        """Insert or overwrite the account with ``remote.id`` (last write wins)."""
        account = db.get(Account, remote.id)
        if account is None:
            account = Account(id=remote.id, user_id=user_id)
            db.add(account)

        account.user_id = user_id
        account.connection_id = remote.connection_id
        account.name = remote.name
        account.nature = remote.nature
        account.balance = remote.balance
        account.currency_code = remote.currency_code
        account.iban = remote.iban
        account.account_number = remote.account_number
        account.sort_code = remote.sort_code
        account.swift_code = remote.swift_code
        db.flush()
        return account

    @staticmethod
    def upsert_transaction(db: Session, remote: ProviderTransaction) -> Transaction:
        """Insert or overwrite the transaction with ``remote.id`` (last write wins)."""
        transaction = db.get(Transaction, remote.id)
        if transaction is None:
            transaction = Transaction(id=remote.id)
            db.add(transaction)

        transaction.account_id = remote.account_id
        transaction.amount = remote.amount
        transaction.currency_code = remote.currency_code
        transaction.made_on = remote.made_on
        transaction.description = remote.description
        transaction.category = remote.category
        transaction.mode = remote.mode
        transaction.status = remote.status
        transaction.duplicated = remote.duplicated
        transaction.balance_snapshot = remote.balance_snapshot
        transaction.posting_date = remote.posting_date
        transaction.merchant_id = remote.merchant_id
        db.flush()
        return transaction

    # ------------------------------------------------------------------
    # Logs and deletion
    # ------------------------------------------------------------------

    @staticmethod
    def append_sync_log(
        db: Session,
        user_id: str,
        action: str,
        status: str,
        message: Optional[str] = None,
        connection_id: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> SyncLogEntry:
        entry = SyncLogEntry(
            user_id=user_id,
            connection_id=connection_id,
            action=action,
            status=status,
            message=message,
            duration_ms=duration_ms,
        )
        db.add(entry)
        db.flush()
        return entry

    @staticmethod
    def delete_all_user_data(db: Session, email: str) -> bool:
        """Delete the user and everything they own.

        Returns:
            True if a user was deleted, False if no user has that email.
        """
        user = StorageService.get_user_by_email(db, email)
        if user is None:
            return False
        db.delete(user)
        db.flush()
        logger.info("Deleted all data for user %s", user.id[:8])
        return True
