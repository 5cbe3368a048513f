"""Typed exception hierarchy for aggregator errors.

Provides structured exceptions for differentiated error handling
(classified aggregator errors vs webhook authentication vs ownership).
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from integrations.error_translator import ErrorKind, TranslatedError


class ProviderError(Exception):
    """Base exception for all provider-related errors.

    Carries the provider name so callers can identify which provider failed.
    """

    def __init__(self, message: str, provider_name: str = ""):
        self.provider_name = provider_name
        super().__init__(message)


class AggregatorError(ProviderError):
    """A classified failure from the aggregator API.

    Wraps a ``TranslatedError`` so callers can branch on ``kind`` and
    ``retryable`` without re-parsing the response. The raw response body
    (when there was one) is kept on ``payload`` for inspection.
    """

    def __init__(
        self,
        error: "TranslatedError",
        provider_name: str = "SaltEdge",
        status_code: int | None = None,
        payload: Any = None,
    ):
        self.error = error
        self.status_code = status_code
        self.payload = payload
        super().__init__(f"[{error.code}] {error.message}", provider_name)

    @property
    def kind(self) -> "ErrorKind":
        return self.error.kind

    @property
    def code(self) -> str:
        return self.error.code

    @property
    def user_message(self) -> str:
        return self.error.user_message

    @property
    def retryable(self) -> bool:
        return self.error.retryable


class WebhookVerificationError(ProviderError):
    """Inbound webhook signature did not verify against the configured key."""

    pass


class ConnectionOwnershipError(ProviderError):
    """The connection is unknown or belongs to a different user."""

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        super().__init__(f"Connection {connection_id} not found", "SaltEdge")
