"""Salt Edge API client wrapper.

This module implements the AggregatorClient protocol for the Salt Edge
Account Information API (v6). Every outbound call goes through
``SaltEdgeClient._request`` which enforces the shared rate limit, signs the
request when a private key is configured, records metrics and an audit
entry, and turns failures into ``AggregatorError``.
"""

import base64
import json
import logging
import re
import time
from datetime import datetime
from decimal import Decimal
from functools import lru_cache
from typing import Any, Callable

import httpx
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from config import settings
from integrations.aggregator_protocol import (
    ConnectSession,
    ProviderAccount,
    ProviderConnection,
    ProviderCustomer,
    ProviderInfo,
    ProviderTransaction,
)
from integrations.client_context import ClientContext, get_client_context
from integrations.error_translator import ErrorKind, make_error, translate_error
from integrations.exceptions import AggregatorError
from integrations.parsing_utils import (
    parse_iso_date,
    parse_iso_datetime,
    to_decimal,
)
from integrations.telemetry import AuditEntry

logger = logging.getLogger(__name__)

API_VERSION = "v6"
SIGNATURE_TTL_SECONDS = 60
TRANSACTIONS_PER_PAGE = 100

DEFAULT_CONSENT_SCOPES = ["accounts", "transactions", "holder_info"]
DEFAULT_WIDGET_OPTIONS: dict[str, Any] = {
    "template": "default_v3",
    "theme": "light",
    "javascript_callback_type": "post_message",
    "show_consent_confirmation": True,
    "disable_provider_search": False,
}

# Institutions surfaced first in the bank picker
POPULAR_BANKS = (
    "bnp_paribas",
    "credit_agricole",
    "societe_generale",
    "lcl",
    "credit_mutuel",
    "banque_postale",
    "revolut",
    "boursorama",
    "ing",
    "hello_bank",
)

_VERSION_SEGMENT = re.compile(r"/api/v\d+", re.IGNORECASE)


def normalize_base_url(base_url: str) -> str:
    """Make sure the base URL targets the current API version.

    A ``/api/v5`` URL is upgraded to ``/api/v6`` (v5 endpoints return 404 for
    the v6 request shapes); a URL with no version segment gets ``/api/v6``
    appended.
    """
    url = base_url.strip()
    if "/api/v5" in url:
        logger.warning(
            "SALTEDGE_BASE_URL points to API v5, switching to %s. "
            "Please update your configuration.",
            API_VERSION,
        )
        url = url.replace("/api/v5", f"/api/{API_VERSION}")
    if not _VERSION_SEGMENT.search(url):
        url = f"{url.rstrip('/')}/api/{API_VERSION}"
    return url.rstrip("/")


def format_account(account: ProviderAccount) -> dict[str, Any]:
    """Shape an account for the live data endpoint."""
    return {
        "id": account.id,
        "name": account.name,
        "balance": float(account.balance),
        "currency": account.currency_code,
        "type": account.nature,
        "iban": account.iban,
        "accountNumber": account.account_number,
    }


def format_transaction(transaction: ProviderTransaction) -> dict[str, Any]:
    """Shape a transaction for display: unsigned amount plus credit/debit type."""
    return {
        "id": transaction.id,
        "date": transaction.made_on.isoformat(),
        "description": transaction.description,
        "amount": float(abs(transaction.amount)),
        "currency": transaction.currency_code,
        "type": "credit" if transaction.amount >= 0 else "debit",
        "category": transaction.category,
        "balance": (
            float(transaction.balance_snapshot)
            if transaction.balance_snapshot is not None
            else None
        ),
    }


class SaltEdgeClient:
    """Wrapper around the Salt Edge API.

    Implements the AggregatorClient protocol. Shared state (rate limiter,
    customer cache, audit log, metrics) lives on the ``ClientContext`` so
    every instance in the process observes the same limits.
    """

    def __init__(
        self,
        app_id: str | None = None,
        secret: str | None = None,
        base_url: str | None = None,
        private_key: str | None = None,
        context: ClientContext | None = None,
        http_client: httpx.Client | None = None,
        locale: str | None = None,
    ):
        """Initialize the client with credentials.

        Args:
            app_id: Salt Edge App-id (defaults to settings)
            secret: Salt Edge Secret (defaults to settings)
            base_url: API base URL, normalised to v6 (defaults to settings)
            private_key: PEM private key used to sign requests (defaults to settings)
            context: Shared limiter/cache/telemetry (defaults to the process context)
            http_client: httpx client to send requests with
            locale: Language for translated user messages
        """
        self._app_id = app_id if app_id is not None else settings.SALTEDGE_APP_ID
        self._secret = secret if secret is not None else settings.SALTEDGE_SECRET
        self.base_url = normalize_base_url(base_url or settings.SALTEDGE_BASE_URL)
        self.context = context or get_client_context()
        self._http = http_client or httpx.Client(timeout=settings.SALTEDGE_TIMEOUT_SECONDS)
        self._locale = locale or settings.SALTEDGE_LOCALE

        pem = private_key if private_key is not None else settings.SALTEDGE_PRIVATE_KEY
        self._private_key = (
            serialization.load_pem_private_key(pem.encode(), password=None) if pem else None
        )
        if self._private_key is None:
            logger.warning("Salt Edge running without a private key, request signing disabled")

    @property
    def provider_name(self) -> str:
        return "SaltEdge"

    @property
    def signing_enabled(self) -> bool:
        return self._private_key is not None

    def is_configured(self) -> bool:
        """Check if App-id and Secret are both present."""
        return bool(self._app_id and self._secret)

    def _check_credentials(self) -> None:
        if not self.is_configured():
            raise AggregatorError(
                make_error(
                    ErrorKind.INVALID_CREDENTIALS,
                    "SALTEDGE_APP_ID and SALTEDGE_SECRET are required. "
                    "Run 'python scripts/setup_saltedge.py' to configure Salt Edge.",
                    retryable=False,
                    locale=self._locale,
                )
            )

    def close(self) -> None:
        self._http.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _sign(self, expires_at: str, method: str, url: str, body: str) -> str:
        """Base64 RSA-SHA256 signature over ``expires_at|METHOD|url|body``."""
        payload = f"{expires_at}|{method}|{url}|{body}".encode()
        signature = self._private_key.sign(payload, padding.PKCS1v15(), hashes.SHA256())
        return base64.b64encode(signature).decode("ascii")

    def _build_headers(self, method: str, url: str, body: str, signed: bool) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "App-id": self._app_id,
            "Secret": self._secret,
        }
        if signed:
            if self._private_key is None:
                logger.debug("Sending unsigned %s %s (no private key)", method, url)
            else:
                expires_at = str(int(time.time()) + SIGNATURE_TTL_SECONDS)
                headers["Expires-at"] = expires_at
                headers["Signature"] = self._sign(expires_at, method, url, body)
        return headers

    def _request(
        self,
        action: str,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        signed: bool = False,
        details: dict[str, Any] | None = None,
    ) -> Any:
        """Send one API call and return the unwrapped ``data`` payload.

        Raises:
            AggregatorError: On missing credentials, rate-limit exhaustion,
                network failure, any non-2xx response or a 2xx body that is
                not JSON. An empty 2xx body yields ``None``.
        """
        audit = self.context.audit_log
        try:
            self._check_credentials()
        except AggregatorError as e:
            audit.record(
                AuditEntry(
                    action=action, level="error", method=method, endpoint=path,
                    status="error", details=details, error=f"{e.code}: {e.error.message}",
                )
            )
            raise

        try:
            self.context.rate_limiter.acquire()
        except AggregatorError as e:
            audit.record(
                AuditEntry(
                    action=action, level="warn", method=method, endpoint=path,
                    status="error", details=details, error=e.code,
                )
            )
            raise

        query = {k: _query_value(v) for k, v in (params or {}).items() if v is not None}
        url = str(httpx.URL(f"{self.base_url}{path}", params=query or None))
        body_text = json.dumps(body) if body is not None else ""
        headers = self._build_headers(method, url, body_text, signed)

        start = time.perf_counter()
        try:
            response = self._http.request(
                method, url, content=body_text or None, headers=headers
            )
        except httpx.HTTPError as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            self.context.metrics.record(duration_ms, success=False)
            translated = translate_error(exc=e, locale=self._locale)
            audit.record(
                AuditEntry(
                    action=action, level="error", method=method, endpoint=path,
                    duration_ms=duration_ms, status="error", details=details,
                    error=translated.message,
                )
            )
            raise AggregatorError(translated) from e

        duration_ms = int((time.perf_counter() - start) * 1000)

        if not response.is_success:
            self.context.metrics.record(duration_ms, success=False)
            try:
                payload = response.json()
            except ValueError:
                payload = None
            translated = translate_error(
                payload=payload, status_code=response.status_code, locale=self._locale
            )
            audit.record(
                AuditEntry(
                    action=action, level="error", method=method, endpoint=path,
                    duration_ms=duration_ms, status="error", details=details,
                    error=f"{translated.code}: {translated.message}",
                )
            )
            raise AggregatorError(
                translated, status_code=response.status_code, payload=payload
            )

        data = None
        if response.content.strip():
            try:
                data = response.json()
            except ValueError as e:
                self.context.metrics.record(duration_ms, success=False)
                translated = make_error(
                    ErrorKind.UNKNOWN_ERROR,
                    f"Unreadable {response.status_code} response body: {e}",
                    retryable=False,
                    locale=self._locale,
                )
                audit.record(
                    AuditEntry(
                        action=action, level="error", method=method, endpoint=path,
                        duration_ms=duration_ms, status="error", details=details,
                        error=f"{translated.code}: {translated.message}",
                    )
                )
                raise AggregatorError(translated, status_code=response.status_code) from e

        self.context.metrics.record(duration_ms, success=True)
        audit.record(
            AuditEntry(
                action=action, method=method, endpoint=path,
                duration_ms=duration_ms, status="success", details=details,
            )
        )
        if isinstance(data, dict) and "data" in data:
            return data["data"]
        return data

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    def list_countries(self) -> list[dict]:
        return self._request("list_countries", "GET", "/countries")

    def list_providers(self, country_code: str | None = None) -> list[ProviderInfo]:
        data = self._request(
            "list_providers", "GET", "/providers", params={"country_code": country_code}
        )
        return [self._map_provider(p) for p in data or []]

    def popular_providers(self, country_code: str = "FR") -> list[ProviderInfo]:
        """Providers in ``country_code`` matching the curated popular-bank list."""
        providers = self.list_providers(country_code)
        return [
            p for p in providers
            if any(
                bank in p.code or bank.replace("_", " ") in p.name.lower()
                for bank in POPULAR_BANKS
            )
        ]

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    def _post_customer(self, identifier: str, details: dict[str, Any]) -> ProviderCustomer:
        data = self._request(
            "create_customer", "POST", "/customers",
            body={"data": {"identifier": identifier}}, signed=True, details=details,
        )
        return self._map_customer(data, identifier)

    def create_customer(self, identifier: str) -> ProviderCustomer:
        """Create (or reuse a cached) customer for ``identifier``.

        A duplicate-customer response is not an error: Salt Edge offers no
        lookup by identifier, so a new customer is created under
        ``{identifier}_{timestamp}`` and cached under the original identifier.
        The first remote customer is left orphaned.

        Raises:
            AggregatorError: On any other failure, or if the retry fails.
        """
        cache = self.context.customer_cache
        cached = cache.get(identifier)
        if cached is not None:
            logger.debug("Customer cache hit for %s", identifier)
            return cached

        try:
            customer = self._post_customer(identifier, {"identifier": identifier})
        except AggregatorError as e:
            if e.kind != ErrorKind.DUPLICATE_CUSTOMER:
                raise
            unique_identifier = f"{identifier}_{time.time_ns()}"
            logger.info(
                "Customer %s already exists, creating %s instead", identifier, unique_identifier
            )
            try:
                customer = self._post_customer(
                    unique_identifier,
                    {"original_identifier": identifier, "new_identifier": unique_identifier},
                )
            except AggregatorError as retry_error:
                logger.error(
                    "Customer creation failed after duplicate conflict: %s", retry_error
                )
                raise AggregatorError(
                    retry_error.error,
                    status_code=retry_error.status_code,
                    payload=retry_error.payload,
                ) from retry_error

        cache.set(identifier, customer)
        return customer

    def get_customer(self, customer_id: str) -> ProviderCustomer:
        data = self._request(
            "get_customer", "GET", f"/customers/{customer_id}", signed=True
        )
        return self._map_customer(data)

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def create_connection_session(
        self,
        customer_id: str,
        provider_code: str | None = None,
        consent_scopes: list[str] | None = None,
        return_url: str | None = None,
        locale: str | None = None,
        widget_options: dict[str, Any] | None = None,
    ) -> ConnectSession:
        """Open a hosted consent session.

        When ``provider_code`` is omitted the hosted UI asks the user to
        pick a bank.
        """
        attempt: dict[str, Any] = {
            "locale": locale or self._locale,
            "show_consent_confirmation": True,
            "credentials_strategy": "store",
        }
        if return_url:
            attempt["return_to"] = return_url

        data: dict[str, Any] = {
            "customer_id": customer_id,
            "consent": {"scopes": list(consent_scopes or DEFAULT_CONSENT_SCOPES)},
            "attempt": attempt,
            "widget": widget_options if widget_options is not None else dict(DEFAULT_WIDGET_OPTIONS),
        }
        if provider_code:
            data["provider_code"] = provider_code

        result = self._request(
            "create_connection_session", "POST", "/connections/connect",
            body={"data": data},
            details={"customer_id": customer_id, "provider_code": provider_code},
        )
        return self._map_session(result)

    def get_connection(self, connection_id: str) -> ProviderConnection:
        data = self._request("get_connection", "GET", f"/connections/{connection_id}")
        return self._map_connection(data)

    def get_customer_connections(self, customer_id: str) -> list[ProviderConnection]:
        data = self._request(
            "get_customer_connections", "GET", "/connections",
            params={"customer_id": customer_id}, signed=True,
        )
        return [self._map_connection(c) for c in data or []]

    def _reopen(self, action: str, connection_id: str, return_url: str) -> ConnectSession:
        body = {
            "data": {
                "attempt": {"return_to": return_url, "locale": self._locale},
                "widget": {
                    k: DEFAULT_WIDGET_OPTIONS[k]
                    for k in ("template", "theme", "javascript_callback_type")
                },
            }
        }
        result = self._request(
            f"{action}_connection", "POST", f"/connections/{connection_id}/{action}",
            body=body, signed=True,
            details={"connection_id": connection_id, "return_to": return_url},
        )
        return self._map_session(result)

    def refresh_connection(self, connection_id: str, return_url: str) -> ConnectSession:
        return self._reopen("refresh", connection_id, return_url)

    def reconnect_connection(self, connection_id: str, return_url: str) -> ConnectSession:
        return self._reopen("reconnect", connection_id, return_url)

    def delete_connection(self, connection_id: str) -> bool:
        data = self._request(
            "delete_connection", "DELETE", f"/connections/{connection_id}", signed=True
        )
        if isinstance(data, dict):
            return bool(data.get("removed", True))
        return True

    # ------------------------------------------------------------------
    # Accounts and transactions
    # ------------------------------------------------------------------

    def get_accounts(self, connection_id: str) -> list[ProviderAccount]:
        data = self._request(
            "get_accounts", "GET", "/accounts", params={"connection_id": connection_id}
        )
        return _map_items(data, self._map_account, "account")

    def get_account(self, account_id: str) -> ProviderAccount:
        data = self._request("get_account", "GET", f"/accounts/{account_id}", signed=True)
        return self._map_account(data)

    def get_transactions(
        self,
        account_id: str,
        from_id: str | None = None,
        per_page: int | None = None,
        from_date: str | None = None,
        to_date: str | None = None,
        pending: bool | None = None,
        duplicated: bool | None = None,
    ) -> list[ProviderTransaction]:
        params = {
            "account_id": account_id,
            "from_id": from_id,
            "per_page": per_page,
            "from_date": from_date,
            "to_date": to_date,
            "pending": pending,
            "duplicated": duplicated,
        }
        data = self._request("get_transactions", "GET", "/transactions", params=params)
        return _map_items(data, lambda t: self._map_transaction(t, account_id), "transaction")

    def get_connection_transactions(self, connection_id: str) -> list[ProviderTransaction]:
        """All transactions across the connection's accounts, newest first.

        Any failure fetching one account's transactions is logged and that
        account skipped; the remaining accounts are still fetched.
        """
        accounts = self.get_accounts(connection_id)
        transactions: list[ProviderTransaction] = []
        for account in accounts:
            try:
                transactions.extend(
                    self.get_transactions(account.id, per_page=TRANSACTIONS_PER_PAGE)
                )
            except Exception as e:
                logger.error(
                    "Error fetching transactions for account %s: %s", account.id, e
                )
        transactions.sort(key=lambda t: t.made_on, reverse=True)
        return transactions

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _map_customer(data: dict, identifier: str | None = None) -> ProviderCustomer:
        return ProviderCustomer(
            id=str(data.get("id") or data.get("customer_id")),
            identifier=data.get("identifier") or identifier or "",
            secret=data.get("secret"),
            created_at=parse_iso_datetime(data.get("created_at")),
            updated_at=parse_iso_datetime(data.get("updated_at")),
        )

    @staticmethod
    def _map_session(data: dict) -> ConnectSession:
        return ConnectSession(
            connect_url=data["connect_url"],
            expires_at=parse_iso_datetime(data.get("expires_at")),
        )

    @staticmethod
    def _map_connection(data: dict) -> ProviderConnection:
        return ProviderConnection(
            id=str(data["id"]),
            customer_id=str(data.get("customer_id") or ""),
            status=data.get("status") or "",
            provider_code=data.get("provider_code"),
            provider_name=data.get("provider_name"),
            created_at=parse_iso_datetime(data.get("created_at")),
            last_success_at=parse_iso_datetime(data.get("last_success_at")),
            next_refresh_possible_at=parse_iso_datetime(data.get("next_refresh_possible_at")),
        )

    @staticmethod
    def _map_account(data: dict) -> ProviderAccount:
        extra = data.get("extra") or {}
        return ProviderAccount(
            id=str(data["id"]),
            connection_id=str(data.get("connection_id") or ""),
            name=data.get("name") or "",
            nature=data.get("nature"),
            balance=to_decimal(data.get("balance")) or Decimal("0"),
            currency_code=data.get("currency_code") or "",
            iban=extra.get("iban"),
            account_number=extra.get("account_number"),
            sort_code=extra.get("sort_code"),
            swift_code=extra.get("swift"),
            raw_data=data,
        )

    @staticmethod
    def _map_transaction(data: dict, account_id: str | None = None) -> ProviderTransaction:
        extra = data.get("extra") or {}
        made_on = parse_iso_date(data.get("made_on"))
        if made_on is None:
            raise ValueError(f"Transaction {data.get('id')} has no valid made_on date")
        return ProviderTransaction(
            id=str(data["id"]),
            account_id=str(data.get("account_id") or account_id or ""),
            amount=to_decimal(data.get("amount")) or Decimal("0"),
            currency_code=data.get("currency_code") or "",
            made_on=made_on,
            description=data.get("description"),
            category=data.get("category"),
            mode=data.get("mode"),
            status=data.get("status"),
            duplicated=bool(data.get("duplicated", False)),
            balance_snapshot=to_decimal(extra.get("account_balance_snapshot")),
            posting_date=parse_iso_date(extra.get("posting_date")),
            merchant_id=extra.get("merchant_id"),
            raw_data=data,
        )

    @staticmethod
    def _map_provider(data: dict) -> ProviderInfo:
        return ProviderInfo(
            code=data.get("code") or "",
            name=data.get("name") or "",
            country_code=data.get("country_code"),
            mode=data.get("mode"),
            status=data.get("status"),
            logo_url=data.get("logo_url"),
        )


def _map_items(items: Any, mapper: Callable[[dict], Any], kind: str) -> list:
    """Map each raw item, dropping (and logging) the ones that cannot be parsed."""
    mapped = []
    for item in items or []:
        try:
            mapped.append(mapper(item))
        except (KeyError, TypeError, ValueError) as e:
            item_id = item.get("id") if isinstance(item, dict) else None
            logger.warning("Skipping unparseable %s %s: %s", kind, item_id, e)
    return mapped


def _query_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    return value


@lru_cache
def get_saltedge_client() -> SaltEdgeClient:
    """Process-wide Salt Edge client bound to the shared context."""
    return SaltEdgeClient()
