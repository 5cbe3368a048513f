"""Sync service - pulls accounts and transactions for one connection into storage."""

import logging
import time

from sqlalchemy.orm import Session

from integrations.aggregator_protocol import (
    AggregatorClient,
    ItemFailure,
    ProviderAccount,
    ProviderTransaction,
    SyncResult,
)
from services.storage_service import StorageService

logger = logging.getLogger(__name__)


class SyncAbortedError(Exception):
    """The sync could not start (unknown owner or connection not active)."""


class SyncService:
    """Best-effort reconciliation of one active connection into storage."""

    def __init__(self, client: AggregatorClient):
        """Initialize with the aggregator client to fetch from.

        Args:
            client: Anything implementing the AggregatorClient protocol.
        """
        self._client = client

    def sync(self, db: Session, connection_id: str, action: str = "sync") -> SyncResult:
        """Fetch and upsert all accounts and transactions for a connection.

        Each account and each transaction is upserted in its own savepoint.
        A failed item is recorded in ``result.failed`` / ``result.errors``
        and the loop moves on, so one bad row never aborts the rest. A
        failure fetching the account or transaction list is recorded the
        same way. Afterwards the local customer and connection are stamped
        with ``last_sync_at = now`` and ``status = active``, one SyncLogEntry
        summarising the run is written, and the session is committed.

        Args:
            db: Database session
            connection_id: Aggregator connection id
            action: Tag recorded on the sync log entry (e.g. ``manual_sync``)

        Returns:
            SyncResult with the stored records and per-item errors.

        Raises:
            AggregatorError: If the connection itself cannot be fetched.
            SyncAbortedError: If the owning customer cannot be resolved or
                the connection is not active. An error log entry is written
                whenever the owning user is known.
        """
        start = time.perf_counter()
        result = SyncResult(connection_id=connection_id)

        remote_connection = self._client.get_connection(connection_id)
        customer = StorageService.find_customer_record(db, remote_connection.customer_id)
        if customer is None:
            message = (
                f"No user found for customer {remote_connection.customer_id or 'unknown'} "
                f"(connection {connection_id})"
            )
            logger.error(message)
            local = StorageService.get_connection(db, connection_id)
            if local is not None:
                StorageService.append_sync_log(
                    db, local.user_id, action, "error", message, connection_id,
                    int((time.perf_counter() - start) * 1000),
                )
                db.commit()
            raise SyncAbortedError(message)

        user_id = customer.user_id
        connection = StorageService.update_connection_record(db, customer, remote_connection)

        if not remote_connection.is_active:
            message = (
                f"Connection {connection_id} is not active "
                f"(status: {remote_connection.status or 'unknown'})"
            )
            logger.warning(message)
            StorageService.append_sync_log(
                db, user_id, action, "error", message, connection_id,
                int((time.perf_counter() - start) * 1000),
            )
            db.commit()
            raise SyncAbortedError(message)

        self._sync_accounts(db, user_id, connection_id, result)
        self._sync_transactions(db, connection_id, result)

        StorageService.mark_synced(db, customer, connection)

        result.duration_ms = int((time.perf_counter() - start) * 1000)
        if result.ok:
            status, message = "success", result.summary()
        else:
            status = "error"
            message = f"{result.summary()}: {'; '.join(result.errors)}"
        StorageService.append_sync_log(
            db, user_id, action, status, message, connection_id, result.duration_ms
        )
        db.commit()

        logger.info(
            "Sync of connection %s finished: %s (%dms)",
            connection_id, result.summary(), result.duration_ms,
        )
        return result

    def _sync_accounts(
        self, db: Session, user_id: str, connection_id: str, result: SyncResult
    ) -> None:
        try:
            accounts: list[ProviderAccount] = self._client.get_accounts(connection_id)
        except Exception as e:
            logger.error("Error fetching accounts for %s: %s", connection_id, e)
            result.errors.append(f"Accounts: {e}")
            return

        for remote in accounts:
            if not remote.connection_id:
                remote.connection_id = connection_id
            try:
                with db.begin_nested():
                    StorageService.upsert_account(db, user_id, remote)
                result.accounts.append(remote)
            except Exception as e:
                self._record_failure(result, "Account", remote.id, e)

    def _sync_transactions(self, db: Session, connection_id: str, result: SyncResult) -> None:
        try:
            transactions: list[ProviderTransaction] = (
                self._client.get_connection_transactions(connection_id)
            )
        except Exception as e:
            logger.error("Error fetching transactions for %s: %s", connection_id, e)
            result.errors.append(f"Transactions: {e}")
            return

        for remote in transactions:
            try:
                with db.begin_nested():
                    StorageService.upsert_transaction(db, remote)
                result.transactions.append(remote)
            except Exception as e:
                self._record_failure(result, "Transaction", remote.id, e)

    @staticmethod
    def _record_failure(result: SyncResult, kind: str, item_id: str, error: Exception) -> None:
        result.failed.append(ItemFailure(item_id=item_id, error=str(error)))
        result.errors.append(f"{kind} {item_id}: {error}")
        logger.warning("Failed to store %s %s: %s", kind.lower(), item_id, error)
