"""Integration tests for the dashboard API endpoints."""

from decimal import Decimal

import pytest

from models import Account, BankConnection, SyncLogEntry, Transaction, User
from services.sync_service import SyncService
from tests.fixtures.mocks import TEST_CONNECTION_ID, TEST_EMAIL


@pytest.fixture
def synced(db, connected_user, mock_saltedge):
    """The test user with one synced connection."""
    SyncService(mock_saltedge).sync(db, TEST_CONNECTION_ID, "manual_sync")
    return connected_user


class TestDashboard:
    def test_empty_for_new_user(self, client):
        response = client.get("/api/dashboard")
        assert response.status_code == 200

        body = response.json()
        assert body["accounts"] == []
        assert body["connections"] == []
        assert body["recent_transactions"] == []
        assert Decimal(body["total_balance"]) == 0
        assert body["last_sync_at"] is None

    def test_synced_data(self, client, synced):
        body = client.get("/api/dashboard").json()

        assert {a["id"] for a in body["accounts"]} == {"acc-1", "acc-2"}
        assert Decimal(body["total_balance"]) == Decimal("9723.45")
        assert {k: Decimal(v) for k, v in body["balances_by_currency"].items()} == {
            "EUR": Decimal("9723.45")
        }
        assert len(body["recent_transactions"]) == 15
        assert body["recent_transactions"][0]["made_on"] == "2024-01-15"

        connection = body["connections"][0]
        assert connection["id"] == TEST_CONNECTION_ID
        assert connection["account_count"] == 2
        assert connection["status"] == "active"
        assert body["last_sync_at"] is not None

    def test_only_own_data(self, client, synced, other_user):
        body = client.get("/api/dashboard").json()
        assert [c["id"] for c in body["connections"]] == [TEST_CONNECTION_ID]

    def test_requires_identity(self, anonymous_client):
        assert anonymous_client.get("/api/dashboard").status_code == 401

    def test_identity_header_is_used(self, anonymous_client, synced):
        response = anonymous_client.get(
            "/api/dashboard", headers={"X-User-Email": TEST_EMAIL.upper()}
        )
        assert response.status_code == 200
        assert len(response.json()["accounts"]) == 2


class TestTransactions:
    def test_default_lists_all(self, client, synced):
        body = client.get("/api/dashboard/transactions").json()
        assert len(body) == 15
        assert {t["account_name"] for t in body} == {"Compte Courant", "Livret A"}

    def test_limit(self, client, synced):
        body = client.get("/api/dashboard/transactions", params={"limit": 3}).json()
        assert [t["made_on"] for t in body] == ["2024-01-15", "2024-01-14", "2024-01-14"]

    @pytest.mark.parametrize("limit", [0, 501])
    def test_limit_bounds(self, client, limit):
        response = client.get("/api/dashboard/transactions", params={"limit": limit})
        assert response.status_code == 422


class TestSyncLogs:
    def test_lists_entries(self, client, synced):
        body = client.get("/api/dashboard/sync-logs").json()
        assert len(body) == 1
        assert body[0]["action"] == "manual_sync"
        assert body[0]["status"] == "success"
        assert body[0]["connection_id"] == TEST_CONNECTION_ID

    def test_limit_bounds(self, client):
        assert client.get("/api/dashboard/sync-logs", params={"limit": 201}).status_code == 422


class TestDeleteUserData:
    def test_deletes_everything_for_user(self, client, synced, other_user, db):
        response = client.delete("/api/dashboard/user-data")

        assert response.status_code == 200
        assert response.json() == {"deleted": True}
        db.expire_all()
        assert db.query(User).filter_by(email=TEST_EMAIL).count() == 0
        assert db.query(Account).count() == 0
        assert db.query(Transaction).count() == 0
        assert db.query(SyncLogEntry).count() == 0
        assert [c.id for c in db.query(BankConnection).all()] == ["conn-999"]

    def test_unknown_user(self, client):
        response = client.delete("/api/dashboard/user-data")
        assert response.status_code == 200
        assert response.json() == {"deleted": False}
