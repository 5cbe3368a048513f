"""Tests for shared API helpers."""

import json
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi import HTTPException

from api.helpers import (
    aggregator_error_body,
    aggregator_error_response,
    dashboard_redirect_url,
    get_current_user_email,
)
from integrations.error_translator import ErrorKind, make_error
from integrations.exceptions import AggregatorError


class TestGetCurrentUserEmail:
    def test_normalises_email(self):
        assert get_current_user_email("  Alice@Example.COM ") == "alice@example.com"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_missing_header_is_401(self, value):
        with pytest.raises(HTTPException) as exc_info:
            get_current_user_email(value)
        assert exc_info.value.status_code == 401


class TestAggregatorErrorEnvelope:
    def _error(self, retryable: bool) -> AggregatorError:
        return AggregatorError(
            make_error(ErrorKind.MAINTENANCE, "Scheduled maintenance", retryable=retryable),
            status_code=503,
            payload={"error": {"class": "MaintenanceMode"}},
        )

    def test_body_includes_details_outside_production(self, monkeypatch):
        monkeypatch.setattr("api.helpers.settings.ENVIRONMENT", "development")
        body = aggregator_error_body(self._error(True))
        assert body["code"] == "MAINTENANCE"
        assert body["retryable"] is True
        assert body["error"] == "Service en maintenance. Veuillez réessayer plus tard."
        assert body["details"]["message"] == "Scheduled maintenance"
        assert body["details"]["payload"] == {"error": {"class": "MaintenanceMode"}}

    def test_body_hides_details_in_production(self, monkeypatch):
        monkeypatch.setattr("api.helpers.settings.ENVIRONMENT", "production")
        assert "details" not in aggregator_error_body(self._error(True))

    def test_retryable_maps_to_503(self):
        response = aggregator_error_response(self._error(True))
        assert response.status_code == 503
        assert json.loads(response.body)["code"] == "MAINTENANCE"

    def test_permanent_maps_to_400(self):
        assert aggregator_error_response(self._error(False)).status_code == 400


class TestDashboardRedirectUrl:
    def test_encodes_outcome(self, monkeypatch):
        monkeypatch.setattr("api.helpers.settings.APP_BASE_URL", "https://app.example.com/")
        url = dashboard_redirect_url("success", "Votre compte a été connecté !", "conn-200")

        parsed = urlparse(url)
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://app.example.com/dashboard"
        query = parse_qs(parsed.query)
        assert query == {
            "status": ["success"],
            "message": ["Votre compte a été connecté !"],
            "connection_id": ["conn-200"],
        }

    def test_connection_id_optional(self):
        assert "connection_id" not in dashboard_redirect_url("info", "En cours")
