"""Shared API helpers for route handlers.

Identity lookup, the aggregator error envelope and redirect builders used
across the route files.
"""

from typing import Optional
from urllib.parse import urlencode

from fastapi import Header, HTTPException
from fastapi.responses import JSONResponse

from config import settings
from integrations.exceptions import AggregatorError


def get_current_user_email(x_user_email: Optional[str] = Header(default=None)) -> str:
    """Return the authenticated user's email from the ``X-User-Email`` header.

    The session layer in front of this API sets the header; the email is the
    only identity attribute the backend relies on.

    Raises:
        HTTPException: 401 if the header is missing or blank.
    """
    if not x_user_email or not x_user_email.strip():
        raise HTTPException(status_code=401, detail="User not authenticated")
    return x_user_email.strip().lower()


def aggregator_error_body(error: AggregatorError) -> dict:
    """Build the ``{error, code, retryable[, details]}`` envelope.

    ``details`` (the raw message and aggregator payload) is only included
    outside production.
    """
    body = {
        "error": error.user_message,
        "code": error.code,
        "retryable": error.retryable,
    }
    if not settings.is_production:
        body["details"] = {
            "message": error.error.message,
            "payload": error.payload,
        }
    return body


def aggregator_error_response(error: AggregatorError) -> JSONResponse:
    """503 for retryable aggregator errors, 400 otherwise."""
    return JSONResponse(
        status_code=error.error.http_status,
        content=aggregator_error_body(error),
    )


def dashboard_redirect_url(status: str, message: str, connection_id: Optional[str] = None) -> str:
    """Dashboard URL carrying a connection-flow outcome in its query string."""
    params = {"status": status, "message": message}
    if connection_id:
        params["connection_id"] = connection_id
    return f"{settings.APP_BASE_URL.rstrip('/')}/dashboard?{urlencode(params)}"
