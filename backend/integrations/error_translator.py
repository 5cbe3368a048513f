"""Classification of aggregator error payloads into a closed set of kinds.

Salt Edge reports failures in several shapes depending on API version and
failure mode. ``translate_error`` is the single place that looks at them and
decides what kind of error occurred, whether a retry could help, and what
to tell the end user.

Classification order:
    1. v6 body ``{"error": {"class": ..., "message": ...}}``
    2. network-level exceptions (connect failures, timeouts)
    3. v5 body ``{"error_class": ..., "error_message": ...}``
    4. bare HTTP status code
    5. generic fallback
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx


class ErrorKind(str, Enum):
    DUPLICATE_CUSTOMER = "DUPLICATE_CUSTOMER"
    CUSTOMER_NOT_FOUND = "CUSTOMER_NOT_FOUND"
    CONNECTION_NOT_FOUND = "CONNECTION_NOT_FOUND"
    PROVIDER_NOT_FOUND = "PROVIDER_NOT_FOUND"
    PROVIDER_DISABLED = "PROVIDER_DISABLED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    CONNECTION_FAILED = "CONNECTION_FAILED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    RATE_LIMIT = "RATE_LIMIT"
    MAINTENANCE = "MAINTENANCE"
    NETWORK_ERROR = "NETWORK_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    SERVER_ERROR = "SERVER_ERROR"
    HTTP_ERROR = "HTTP_ERROR"
    UNKNOWN_PROVIDER_ERROR = "UNKNOWN_PROVIDER_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass(frozen=True)
class TranslatedError:
    """One classified error: stable code, raw message, user message, retry hint."""

    kind: ErrorKind
    message: str
    user_message: str
    retryable: bool
    details: dict[str, Any] | None = field(default=None, compare=False)

    @property
    def code(self) -> str:
        return self.kind.value

    @property
    def http_status(self) -> int:
        """HTTP status an API caller should see for this error."""
        return 503 if self.retryable else 400


# Vendor error class -> (kind, retryable, message key)
_ERROR_CLASSES: dict[str, tuple[ErrorKind, bool, str]] = {
    "DuplicatedCustomer": (ErrorKind.DUPLICATE_CUSTOMER, False, "DUPLICATE_CUSTOMER"),
    "CustomerNotFound": (ErrorKind.CUSTOMER_NOT_FOUND, False, "CUSTOMER_NOT_FOUND"),
    "ConnectionNotFound": (ErrorKind.CONNECTION_NOT_FOUND, False, "CONNECTION_NOT_FOUND"),
    "ProviderNotFound": (ErrorKind.PROVIDER_NOT_FOUND, False, "PROVIDER_NOT_FOUND"),
    "ProviderDisabled": (ErrorKind.PROVIDER_DISABLED, True, "PROVIDER_DISABLED"),
    "InvalidCredentials": (ErrorKind.INVALID_CREDENTIALS, True, "INVALID_CREDENTIALS"),
    "ApiKeyNotFound": (ErrorKind.INVALID_CREDENTIALS, False, "API_KEY_NOT_FOUND"),
    "ConnectionFailed": (ErrorKind.CONNECTION_FAILED, True, "CONNECTION_FAILED"),
    "SessionExpired": (ErrorKind.SESSION_EXPIRED, True, "SESSION_EXPIRED"),
    "RateLimitExceeded": (ErrorKind.RATE_LIMIT, True, "RATE_LIMIT"),
    "MaintenanceMode": (ErrorKind.MAINTENANCE, True, "MAINTENANCE"),
}

# HTTP status -> (kind, raw message, retryable)
_HTTP_STATUSES: dict[int, tuple[ErrorKind, str, bool]] = {
    400: (ErrorKind.BAD_REQUEST, "Invalid request parameters", False),
    401: (ErrorKind.UNAUTHORIZED, "Authentication failed", False),
    403: (ErrorKind.FORBIDDEN, "Access denied", False),
    404: (ErrorKind.NOT_FOUND, "Resource not found", False),
    429: (ErrorKind.RATE_LIMIT, "Rate limit exceeded", True),
    500: (ErrorKind.SERVER_ERROR, "Internal server error", True),
}

_USER_MESSAGES: dict[str, dict[str, str]] = {
    "fr": {
        "DUPLICATE_CUSTOMER": "Profil utilisateur déjà existant (géré automatiquement)",
        "CUSTOMER_NOT_FOUND": "Profil utilisateur introuvable. Veuillez recréer votre connexion.",
        "CONNECTION_NOT_FOUND": "Connexion bancaire introuvable. Veuillez vous reconnecter.",
        "PROVIDER_NOT_FOUND": "Banque non supportée. Veuillez choisir une autre banque.",
        "PROVIDER_DISABLED": "Cette banque est temporairement indisponible. Essayez une autre banque.",
        "INVALID_CREDENTIALS": "Identifiants bancaires incorrects. Vérifiez vos informations.",
        "API_KEY_NOT_FOUND": "Identifiants API invalides. Vérifiez votre configuration.",
        "CONNECTION_FAILED": "Échec de la connexion bancaire. Vérifiez vos identifiants.",
        "SESSION_EXPIRED": "Session expirée. Veuillez recommencer la connexion.",
        "RATE_LIMIT": "Trop de tentatives. Veuillez patienter quelques minutes.",
        "MAINTENANCE": "Service en maintenance. Veuillez réessayer plus tard.",
        "NETWORK_ERROR": "Impossible de se connecter au service bancaire. Veuillez réessayer.",
        "BAD_REQUEST": "Paramètres de requête invalides. Veuillez réessayer.",
        "UNAUTHORIZED": "Authentification échouée. Vérifiez la configuration.",
        "FORBIDDEN": "Accès refusé. Vérifiez vos permissions.",
        "NOT_FOUND": "Ressource introuvable.",
        "SERVER_ERROR": "Erreur serveur temporaire. Veuillez réessayer.",
        "HTTP_ERROR": "Erreur de communication. Veuillez réessayer.",
        "UNKNOWN_PROVIDER_ERROR": "Erreur inattendue du service bancaire. Contactez le support.",
        "UNKNOWN_ERROR": "Erreur inattendue. Veuillez réessayer ou contactez le support.",
    },
    "en": {
        "DUPLICATE_CUSTOMER": "User profile already exists (handled automatically)",
        "CUSTOMER_NOT_FOUND": "User profile not found. Please create your connection again.",
        "CONNECTION_NOT_FOUND": "Bank connection not found. Please reconnect.",
        "PROVIDER_NOT_FOUND": "Bank not supported. Please choose another bank.",
        "PROVIDER_DISABLED": "This bank is temporarily unavailable. Try another bank.",
        "INVALID_CREDENTIALS": "Incorrect bank credentials. Check your details.",
        "API_KEY_NOT_FOUND": "Invalid API credentials. Check your configuration.",
        "CONNECTION_FAILED": "Bank connection failed. Check your credentials.",
        "SESSION_EXPIRED": "Session expired. Please start the connection again.",
        "RATE_LIMIT": "Too many attempts. Please wait a few minutes.",
        "MAINTENANCE": "Service under maintenance. Please try again later.",
        "NETWORK_ERROR": "Unable to reach the banking service. Please try again.",
        "BAD_REQUEST": "Invalid request parameters. Please try again.",
        "UNAUTHORIZED": "Authentication failed. Check the configuration.",
        "FORBIDDEN": "Access denied. Check your permissions.",
        "NOT_FOUND": "Resource not found.",
        "SERVER_ERROR": "Temporary server error. Please try again.",
        "HTTP_ERROR": "Communication error. Please try again.",
        "UNKNOWN_PROVIDER_ERROR": "Unexpected banking service error. Contact support.",
        "UNKNOWN_ERROR": "Unexpected error. Please try again or contact support.",
    },
}

DEFAULT_LOCALE = "fr"

_NETWORK_EXCEPTIONS = (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError)


def user_message_for(key: str, locale: str = DEFAULT_LOCALE) -> str:
    """Look up a localized user message, falling back to the default locale."""
    messages = _USER_MESSAGES.get(locale) or _USER_MESSAGES[DEFAULT_LOCALE]
    return messages.get(key) or _USER_MESSAGES[DEFAULT_LOCALE][key]


def make_error(
    kind: ErrorKind,
    message: str,
    retryable: bool,
    locale: str = DEFAULT_LOCALE,
    details: dict[str, Any] | None = None,
) -> TranslatedError:
    """Build a TranslatedError for a kind the caller already knows."""
    return TranslatedError(
        kind=kind,
        message=message,
        user_message=user_message_for(kind.value, locale),
        retryable=retryable,
        details=details,
    )


def _from_error_class(
    error_class: str | None, message: str | None, locale: str, fallback_message: str
) -> TranslatedError:
    entry = _ERROR_CLASSES.get(error_class or "")
    if entry is None:
        return TranslatedError(
            kind=ErrorKind.UNKNOWN_PROVIDER_ERROR,
            message=message or fallback_message,
            user_message=user_message_for("UNKNOWN_PROVIDER_ERROR", locale),
            retryable=False,
            details={"error_class": error_class, "error_message": message},
        )
    kind, retryable, message_key = entry
    return TranslatedError(
        kind=kind,
        message=message or error_class or "",
        user_message=user_message_for(message_key, locale),
        retryable=retryable,
    )


def translate_error(
    payload: Any = None,
    status_code: int | None = None,
    exc: BaseException | None = None,
    locale: str = DEFAULT_LOCALE,
) -> TranslatedError:
    """Classify an aggregator failure.

    Args:
        payload: Decoded JSON response body, if any.
        status_code: HTTP status of the response, if there was a response.
        exc: The exception raised while making the call, if any.
        locale: Language for the user-facing message ("fr" or "en").

    Returns:
        The TranslatedError describing the failure. Never raises.
    """
    # Already classified (e.g. the rate limiter's own refusal)
    translated = getattr(exc, "error", None)
    if isinstance(translated, TranslatedError):
        return translated

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            return _from_error_class(
                error.get("class"), error.get("message"), locale, "Unknown Salt Edge error"
            )

    if isinstance(exc, _NETWORK_EXCEPTIONS):
        return make_error(
            ErrorKind.NETWORK_ERROR,
            f"Connection to Salt Edge API failed: {exc}",
            retryable=True,
            locale=locale,
        )

    if isinstance(payload, dict) and "error_class" in payload:
        return _from_error_class(
            payload.get("error_class"),
            payload.get("error_message"),
            locale,
            "Unknown Salt Edge error (v5)",
        )

    if status_code is not None:
        entry = _HTTP_STATUSES.get(status_code)
        if entry is not None:
            kind, message, retryable = entry
            return make_error(kind, message, retryable, locale)
        return make_error(
            ErrorKind.HTTP_ERROR, f"HTTP {status_code} error", retryable=True, locale=locale
        )

    return make_error(
        ErrorKind.UNKNOWN_ERROR,
        str(exc) if exc is not None else "Unknown error",
        retryable=False,
        locale=locale,
        details={"exception": type(exc).__name__} if exc is not None else None,
    )
