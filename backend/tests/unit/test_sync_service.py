"""Tests for SyncService - best-effort sync of one connection into storage."""

from datetime import date
from decimal import Decimal

import pytest

from integrations.aggregator_protocol import ProviderTransaction
from integrations.error_translator import ErrorKind
from integrations.exceptions import AggregatorError
from models import Account, BankConnection, SyncLogEntry, Transaction
from services.sync_service import SyncAbortedError, SyncService
from tests.fixtures import create_user_with_connection
from tests.fixtures.mocks import (
    TEST_CONNECTION_ID,
    MockSaltEdgeClient,
    aggregator_error,
)


@pytest.fixture
def service(mock_saltedge):
    return SyncService(mock_saltedge)


class TestSuccessfulSync:
    def test_stores_accounts_and_transactions(self, db, connected_user, service):
        result = service.sync(db, TEST_CONNECTION_ID, "manual_sync")

        assert result.ok
        assert len(result.accounts) == 2
        assert len(result.transactions) == 15
        assert result.failed == []
        assert db.query(Account).count() == 2
        assert db.query(Transaction).count() == 15

        balances = {a.id: a.balance for a in db.query(Account).all()}
        assert balances == {"acc-1": Decimal("1523.45"), "acc-2": Decimal("8200.00")}

    def test_marks_connection_synced_and_logs(self, db, connected_user, service):
        service.sync(db, TEST_CONNECTION_ID, "manual_sync")

        connection = db.get(BankConnection, TEST_CONNECTION_ID)
        assert connection.status == "active"
        assert connection.last_sync_at is not None
        assert connection.customer.last_sync_at is not None

        entry = db.query(SyncLogEntry).one()
        assert entry.action == "manual_sync"
        assert entry.status == "success"
        assert entry.message == "2 accounts, 15 transactions synced"
        assert entry.connection_id == TEST_CONNECTION_ID

    def test_second_sync_is_idempotent(self, db, connected_user, service):
        service.sync(db, TEST_CONNECTION_ID)
        service.sync(db, TEST_CONNECTION_ID)

        assert db.query(Account).count() == 2
        assert db.query(Transaction).count() == 15
        assert db.query(SyncLogEntry).count() == 2

    def test_creates_connection_record_when_missing(self, db, service):
        create_user_with_connection(db, connection_id=None)

        result = service.sync(db, TEST_CONNECTION_ID)

        assert result.ok
        connection = db.get(BankConnection, TEST_CONNECTION_ID)
        assert connection.provider_name == "Fake Demo Bank"


class TestPartialFailures:
    def test_bad_transaction_is_skipped(self, db, connected_user, mock_saltedge):
        orphan = ProviderTransaction(
            id="tx-orphan",
            account_id="acc-missing",
            amount=Decimal("-5.00"),
            currency_code="EUR",
            made_on=date(2024, 1, 1),
        )
        mock_saltedge.transactions = mock_saltedge.transactions + [orphan]

        result = SyncService(mock_saltedge).sync(db, TEST_CONNECTION_ID)

        assert not result.ok
        assert len(result.transactions) == 15
        assert [f.item_id for f in result.failed] == ["tx-orphan"]
        assert result.errors[0].startswith("Transaction tx-orphan:")
        assert db.query(Transaction).count() == 15

        entry = db.query(SyncLogEntry).one()
        assert entry.status == "error"
        assert entry.message.startswith("2 accounts, 15 transactions synced, 1 errors: ")

    def test_account_list_failure_still_syncs_transactions(self, db, connected_user, mock_saltedge):
        db.add(
            Account(
                id="acc-1",
                user_id=connected_user.id,
                connection_id=TEST_CONNECTION_ID,
                name="Compte Courant",
                balance=Decimal("0"),
                currency_code="EUR",
            )
        )
        db.commit()
        mock_saltedge.failures["get_accounts"] = aggregator_error()

        result = SyncService(mock_saltedge).sync(db, TEST_CONNECTION_ID)

        assert result.accounts == []
        assert result.errors[0].startswith("Accounts: ")
        # Only the transactions for the already-known account can be stored
        assert len(result.transactions) == 10
        assert len(result.failed) == 5

    def test_transaction_list_failure_is_recorded(self, db, connected_user, mock_saltedge):
        mock_saltedge.failures["get_connection_transactions"] = aggregator_error()

        result = SyncService(mock_saltedge).sync(db, TEST_CONNECTION_ID)

        assert len(result.accounts) == 2
        assert result.transactions == []
        assert result.errors == [f"Transactions: {mock_saltedge.failures['get_connection_transactions']}"]

    def test_unexpected_list_failure_is_recorded_not_raised(self, db, connected_user, mock_saltedge):
        mock_saltedge.failures["get_connection_transactions"] = ValueError("bad made_on")

        result = SyncService(mock_saltedge).sync(db, TEST_CONNECTION_ID, "manual_sync")

        assert len(result.accounts) == 2
        assert result.errors == ["Transactions: bad made_on"]
        assert db.query(Account).count() == 2
        entry = db.query(SyncLogEntry).one()
        assert entry.status == "error"
        assert entry.message.endswith("Transactions: bad made_on")


class TestAbortedSync:
    def test_connection_fetch_failure_propagates(self, db, connected_user, mock_saltedge):
        mock_saltedge.failures["get_connection"] = aggregator_error(ErrorKind.NETWORK_ERROR)

        with pytest.raises(AggregatorError):
            SyncService(mock_saltedge).sync(db, TEST_CONNECTION_ID)
        assert db.query(SyncLogEntry).count() == 0

    def test_unknown_customer_aborts(self, db):
        with pytest.raises(SyncAbortedError, match="No user found for customer cust-100"):
            SyncService(MockSaltEdgeClient()).sync(db, TEST_CONNECTION_ID)
        assert db.query(Account).count() == 0

    def test_inactive_connection_aborts_with_log(self, db, connected_user):
        client = MockSaltEdgeClient(connection_status="inactive")

        with pytest.raises(SyncAbortedError, match="not active"):
            SyncService(client).sync(db, TEST_CONNECTION_ID, "webhook_sync")

        assert client.calls_to("get_accounts") == []
        connection = db.get(BankConnection, TEST_CONNECTION_ID)
        assert connection.status == "inactive"
        entry = db.query(SyncLogEntry).one()
        assert entry.status == "error"
        assert entry.action == "webhook_sync"
