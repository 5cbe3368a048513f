"""Tests for services.credential_manager."""

import sys
from unittest.mock import MagicMock, patch

import pytest

from services.credential_manager import (
    CREDENTIAL_KEYS,
    SERVICE_NAME,
    get_credential,
    missing_credentials,
    normalize_pem,
    set_credential,
)

PEM = "-----BEGIN PUBLIC KEY-----\nMIIBIjANBgkq\n-----END PUBLIC KEY-----\n"


@pytest.fixture
def mock_keyring():
    keyring = MagicMock()
    with patch.dict(sys.modules, {"keyring": keyring}):
        yield keyring


class TestGetCredential:
    def test_returns_value(self, mock_keyring):
        mock_keyring.get_password.return_value = "app-id-123"
        assert get_credential("SALTEDGE_APP_ID") == "app-id-123"
        mock_keyring.get_password.assert_called_once_with(SERVICE_NAME, "SALTEDGE_APP_ID")

    def test_returns_none_when_not_found(self, mock_keyring):
        mock_keyring.get_password.return_value = None
        assert get_credential("SALTEDGE_SECRET") is None

    def test_returns_none_when_keyring_not_installed(self):
        with patch.dict(sys.modules, {"keyring": None}):
            assert get_credential("SALTEDGE_SECRET") is None

    def test_returns_none_on_keyring_exception(self, mock_keyring):
        mock_keyring.get_password.side_effect = Exception("no backend")
        assert get_credential("SALTEDGE_SECRET") is None


class TestSetCredential:
    def test_stores_value(self, mock_keyring):
        assert set_credential("SALTEDGE_SECRET", "s3cret") is True
        mock_keyring.set_password.assert_called_once_with(
            SERVICE_NAME, "SALTEDGE_SECRET", "s3cret"
        )

    def test_rejects_non_credential_key(self, mock_keyring):
        assert set_credential("DATABASE_URL", "sqlite://") is False
        mock_keyring.set_password.assert_not_called()

    def test_rejects_empty_value(self, mock_keyring):
        assert set_credential("SALTEDGE_APP_ID", "") is False
        assert set_credential("SALTEDGE_APP_ID", "   ") is False
        mock_keyring.set_password.assert_not_called()

    def test_flattened_pem_is_normalised(self, mock_keyring):
        flattened = PEM.strip().replace("\n", "\\n")
        assert set_credential("SALTEDGE_PUBLIC_KEY", flattened) is True
        mock_keyring.set_password.assert_called_once_with(
            SERVICE_NAME, "SALTEDGE_PUBLIC_KEY", PEM
        )

    def test_rejects_non_pem_key_material(self, mock_keyring):
        assert set_credential("SALTEDGE_PRIVATE_KEY", "not a key") is False
        mock_keyring.set_password.assert_not_called()

    def test_returns_false_when_keyring_not_installed(self):
        with patch.dict(sys.modules, {"keyring": None}):
            assert set_credential("SALTEDGE_APP_ID", "abc") is False

    def test_returns_false_on_keyring_exception(self, mock_keyring):
        mock_keyring.set_password.side_effect = Exception("locked")
        assert set_credential("SALTEDGE_APP_ID", "abc") is False


class TestMissingCredentials:
    def test_reports_absent_required_keys(self, mock_keyring):
        mock_keyring.get_password.side_effect = lambda service, key: (
            "app-id" if key == "SALTEDGE_APP_ID" else None
        )
        assert missing_credentials() == ["SALTEDGE_SECRET"]

    def test_nothing_missing(self, mock_keyring):
        mock_keyring.get_password.return_value = "value"
        assert missing_credentials() == []


def test_normalize_pem_is_idempotent():
    assert normalize_pem(PEM) == PEM
    assert normalize_pem(normalize_pem(PEM)) == PEM


def test_credential_keys_cover_saltedge_secrets():
    assert CREDENTIAL_KEYS == {
        "SALTEDGE_APP_ID",
        "SALTEDGE_SECRET",
        "SALTEDGE_PRIVATE_KEY",
        "SALTEDGE_PUBLIC_KEY",
    }
