"""Tests for Settings and the KeychainSettingsSource in config.py."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from config import KeychainSettingsSource, Settings
from services.credential_manager import CREDENTIAL_KEYS

# Environment variables that would interfere with Settings defaults if
# set in the test runner's shell.  We clear them for isolation.
_ENV_VARS_TO_CLEAR = {
    "DATABASE_URL",
    "ENVIRONMENT",
    "DEBUG",
    "LOG_LEVEL",
    "SALTEDGE_STATUS",
    "SALTEDGE_WEBHOOK_STRICT",
    *CREDENTIAL_KEYS,
}


def _clean_env():
    """Return a dict suitable for ``os.environ`` patching that removes
    any variables the Settings class reads."""
    return {k: v for k, v in os.environ.items() if k not in _ENV_VARS_TO_CLEAR}


class TestKeychainSettingsSource:
    """Test the KeychainSettingsSource pydantic-settings source."""

    def test_keychain_value_overrides_default(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.side_effect = lambda key: (
                "keychain-app-id" if key == "SALTEDGE_APP_ID" else None
            )
            s = Settings(_env_file=None)
            assert s.SALTEDGE_APP_ID == "keychain-app-id"
            assert s.SALTEDGE_SECRET == ""

    def test_init_value_overrides_keychain(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential", return_value="keychain-value"),
        ):
            s = Settings(_env_file=None, SALTEDGE_SECRET="init-value")
            assert s.SALTEDGE_SECRET == "init-value"

    def test_keychain_overrides_env_var(self):
        env = _clean_env()
        env["SALTEDGE_APP_ID"] = "from-env"
        with (
            patch.dict(os.environ, env, clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.side_effect = lambda key: (
                "from-keychain" if key == "SALTEDGE_APP_ID" else None
            )
            s = Settings(_env_file=None)
            assert s.SALTEDGE_APP_ID == "from-keychain"

    def test_non_credential_fields_skip_keychain(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.return_value = None
            s = Settings(_env_file=None)
            assert s.DATABASE_URL == "sqlite:///./finsight.db"
            called_keys = {call.args[0] for call in mock_get.call_args_list}
            assert called_keys <= CREDENTIAL_KEYS

    def test_pem_key_from_keychain_passes_validator(self):
        real_pem = "-----BEGIN PUBLIC KEY-----\nMIIBIjAN...\n-----END PUBLIC KEY-----\n"
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.side_effect = lambda key: (
                real_pem if key == "SALTEDGE_PUBLIC_KEY" else None
            )
            s = Settings(_env_file=None)
            assert s.SALTEDGE_PUBLIC_KEY == real_pem

    def test_source_is_in_priority_chain(self):
        sources = Settings.settings_customise_sources(
            Settings,
            init_settings=object(),
            env_settings=object(),
            dotenv_settings=object(),
            file_secret_settings=object(),
        )
        source_types = [type(s) for s in sources]
        assert source_types.index(KeychainSettingsSource) == 1


class TestSaltEdgeSettings:
    """Operating mode, webhook strictness and PEM normalisation."""

    def _settings(self, **kwargs) -> Settings:
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential", return_value=None),
        ):
            return Settings(_env_file=None, **kwargs)

    def test_defaults_to_pending_mode(self):
        s = self._settings()
        assert s.SALTEDGE_STATUS == "pending"
        assert s.saltedge_live is False
        assert s.webhook_strict is False

    def test_live_mode_is_strict_by_default(self):
        s = self._settings(SALTEDGE_STATUS="LIVE")
        assert s.saltedge_live is True
        assert s.webhook_strict is True

    def test_explicit_strict_flag_wins(self):
        assert self._settings(SALTEDGE_STATUS="live", SALTEDGE_WEBHOOK_STRICT=False).webhook_strict is False
        assert self._settings(SALTEDGE_WEBHOOK_STRICT=True).webhook_strict is True

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError, match="SALTEDGE_STATUS"):
            self._settings(SALTEDGE_STATUS="sandbox")

    def test_escaped_newlines_in_pem_are_expanded(self):
        s = self._settings(SALTEDGE_PRIVATE_KEY="-----BEGIN-----\\nabc\\n-----END-----")
        assert s.SALTEDGE_PRIVATE_KEY == "-----BEGIN-----\nabc\n-----END-----"

    def test_is_production(self):
        assert self._settings(ENVIRONMENT="production").is_production is True
        assert self._settings().is_production is False
