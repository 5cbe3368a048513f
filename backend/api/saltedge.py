"""Salt Edge API endpoints.

Server-side endpoints for the Salt Edge consent flow: opening sessions,
receiving webhooks and the browser callback, and managing existing
connections (live data, refresh, manual sync, disconnect, diagnostics).
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, Request
from fastapi.responses import RedirectResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from api.helpers import dashboard_redirect_url, get_current_user_email
from config import settings
from database import get_db
from integrations.client_context import ClientContext, get_client_context
from integrations.exceptions import AggregatorError
from integrations.saltedge_client import (
    SaltEdgeClient,
    format_account,
    format_transaction,
    get_saltedge_client,
)
from integrations.webhook_verifier import WebhookVerifier, get_webhook_verifier
from schemas.saltedge import (
    ConnectionDataResponse,
    ConnectionInfo,
    ConnectRequest,
    ConnectResponse,
    ItemFailureResponse,
    ProviderResponse,
    RefreshRequest,
    RefreshResponse,
    StatusActionRequest,
    SyncResultResponse,
    TransactionsSummary,
    WebhookAck,
    WebhookData,
)
from services.connection_service import ConnectionService
from services.storage_service import StorageService
from services.sync_service import SyncAbortedError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/saltedge", tags=["saltedge"])

DISPLAYED_TRANSACTIONS_LIMIT = 100
DATA_TYPES = ("all", "accounts", "transactions")
STATUS_ACTIONS = ("reset", "clear_logs", "clear_cache", "reset_all")
MSG_CALLBACK_FAILED = "Erreur lors du traitement du retour bancaire."


def get_connection_service(
    client: SaltEdgeClient = Depends(get_saltedge_client),
) -> ConnectionService:
    """Dependency for injecting the connection service (overridable in tests)."""
    context = get_client_context()
    return ConnectionService(
        client,
        sandbox_quota=None if settings.saltedge_live else context.sandbox_quota,
    )


class BackgroundSyncDispatcher:
    """Runs sync jobs after the response is sent, via FastAPI BackgroundTasks."""

    def __init__(self, background_tasks: BackgroundTasks, service: ConnectionService):
        self._tasks = background_tasks
        self._service = service

    def dispatch(self, connection_id: str, action: str) -> None:
        logger.info("Scheduling %s for connection %s", action, connection_id)
        self._tasks.add_task(self._service.run_sync_job, connection_id, action)


# ------------------------------------------------------------------
# Aggregator -> backend
# ------------------------------------------------------------------


@router.post("/webhook", response_model=WebhookAck)
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    signature: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    verifier: WebhookVerifier = Depends(get_webhook_verifier),
    service: ConnectionService = Depends(get_connection_service),
):
    """Acknowledge a Salt Edge notification and apply it.

    Always answers ``{"received": true}`` once the body is accepted; a
    success notification for an active connection schedules a sync that
    runs after the response.
    """
    raw_body = await request.body()

    if not verifier.verify(raw_body, signature):
        if verifier.strict:
            raise HTTPException(status_code=401, detail="Invalid webhook signature")
        logger.warning("Processing webhook with unverified signature (non-strict mode)")

    try:
        payload = json.loads(raw_body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Webhook body is not valid JSON")

    try:
        data = WebhookData.model_validate(
            payload.get("data") if isinstance(payload, dict) else None
        )
    except ValidationError:
        logger.warning("Webhook without a usable data object, ignoring")
        return WebhookAck()

    logger.info(
        "Webhook for connection %s: %s (%s)", data.connection_id, data.stage, data.api_stage
    )
    await run_in_threadpool(
        service.handle_webhook,
        db,
        data.connection_id,
        data.stage,
        BackgroundSyncDispatcher(background_tasks, service),
        customer_id=data.customer_id,
        error_message=data.error_message,
    )
    return WebhookAck()


@router.get("/callback")
def connection_callback(
    connection_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    stage: Optional[str] = None,
    error: Optional[str] = None,
    error_message: Optional[str] = None,
    service: ConnectionService = Depends(get_connection_service),
):
    """Redirect the browser back to the dashboard with the connection outcome."""
    logger.info(
        "Salt Edge callback: connection=%s customer=%s stage=%s error=%s",
        connection_id, customer_id, stage, error_message or error,
    )
    try:
        outcome = service.handle_callback(
            connection_id=connection_id,
            stage=stage,
            error=error,
            error_message=error_message,
        )
        url = dashboard_redirect_url(outcome.status, outcome.message, outcome.connection_id)
    except Exception:
        logger.error("Callback handling failed", exc_info=True)
        url = dashboard_redirect_url("error", MSG_CALLBACK_FAILED)
    return RedirectResponse(url=url, status_code=303)


# ------------------------------------------------------------------
# User -> backend
# ------------------------------------------------------------------


@router.post("/connect", response_model=ConnectResponse)
def start_connection(
    request: ConnectRequest,
    email: str = Depends(get_current_user_email),
    db: Session = Depends(get_db),
    service: ConnectionService = Depends(get_connection_service),
):
    """Open a hosted consent session and return its URL."""
    started = service.start_connection(db, email, request.provider_code)
    test_status = None
    if not settings.saltedge_live:
        test_status = get_client_context().sandbox_quota.status()
    return ConnectResponse(
        connect_url=started.session.connect_url,
        expires_at=started.session.expires_at,
        customer_id=started.customer_id,
        test_status=test_status,
    )


@router.get("/providers", response_model=list[ProviderResponse])
def list_popular_providers(
    country: str = Query(default=None, min_length=2, max_length=2),
    client: SaltEdgeClient = Depends(get_saltedge_client),
):
    """Popular banks for a country (defaults to the configured country)."""
    country_code = (country or settings.SALTEDGE_POPULAR_COUNTRY).upper()
    return [
        ProviderResponse.model_validate(p)
        for p in client.popular_providers(country_code)
    ]


@router.get("/connections/{connection_id}/data", response_model=ConnectionDataResponse)
def get_connection_data(
    connection_id: str,
    type: str = Query(default="all"),
    email: str = Depends(get_current_user_email),
    db: Session = Depends(get_db),
    client: SaltEdgeClient = Depends(get_saltedge_client),
):
    """Live, display-formatted accounts and transactions for an active connection."""
    if type not in DATA_TYPES:
        raise HTTPException(status_code=400, detail=f"type must be one of {DATA_TYPES}")

    user = StorageService.get_user_by_email(db, email)
    if user is None or StorageService.get_user_connection(db, user.id, connection_id) is None:
        raise HTTPException(status_code=404, detail="Connection not found")

    connection = client.get_connection(connection_id)
    if not connection.is_active:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "Connection is not active",
                "status": connection.status,
                "message": "La connexion bancaire n'est pas active. Veuillez la reconnecter.",
            },
        )

    result = ConnectionDataResponse(
        connection=ConnectionInfo(
            id=connection.id,
            provider_name=connection.provider_name,
            status=connection.status,
            last_success_at=connection.last_success_at,
            created_at=connection.created_at,
        )
    )

    if type in ("all", "accounts"):
        try:
            result.accounts = [format_account(a) for a in client.get_accounts(connection_id)]
        except AggregatorError as e:
            logger.error("Error fetching accounts for %s: %s", connection_id, e)
            result.accounts_error = "Impossible de récupérer les comptes"

    if type in ("all", "transactions"):
        try:
            transactions = client.get_connection_transactions(connection_id)
            displayed = transactions[:DISPLAYED_TRANSACTIONS_LIMIT]
            result.transactions = [format_transaction(t) for t in displayed]
            result.transactions_summary = TransactionsSummary(
                total_count=len(transactions),
                displayed_count=len(displayed),
                date_range={
                    "from": transactions[-1].made_on.isoformat() if transactions else None,
                    "to": transactions[0].made_on.isoformat() if transactions else None,
                },
            )
        except AggregatorError as e:
            logger.error("Error fetching transactions for %s: %s", connection_id, e)
            result.transactions_error = "Impossible de récupérer les transactions"

    return result


@router.post("/connections/{connection_id}/refresh", response_model=RefreshResponse)
def refresh_connection(
    connection_id: str,
    request: RefreshRequest,
    email: str = Depends(get_current_user_email),
    db: Session = Depends(get_db),
    service: ConnectionService = Depends(get_connection_service),
):
    """Re-open a hosted session to refresh or reconnect an existing connection."""
    try:
        session = service.refresh_connection(db, email, connection_id, request.type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return RefreshResponse(
        connect_url=session.connect_url,
        expires_at=session.expires_at,
        type=request.type,
    )


@router.post("/connections/{connection_id}/sync", response_model=SyncResultResponse)
def sync_connection(
    connection_id: str,
    email: str = Depends(get_current_user_email),
    db: Session = Depends(get_db),
    service: ConnectionService = Depends(get_connection_service),
):
    """Sync an active connection now and return the outcome."""
    try:
        result = service.trigger_manual_sync(db, email, connection_id)
    except SyncAbortedError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return SyncResultResponse(
        connection_id=connection_id,
        status="success" if result.ok else "error",
        accounts_synced=len(result.accounts),
        transactions_synced=len(result.transactions),
        errors=result.errors,
        failed=[ItemFailureResponse(item_id=f.item_id, error=f.error) for f in result.failed],
        duration_ms=result.duration_ms,
    )


@router.delete("/connections/{connection_id}", status_code=204)
def disconnect(
    connection_id: str,
    email: str = Depends(get_current_user_email),
    db: Session = Depends(get_db),
    service: ConnectionService = Depends(get_connection_service),
):
    """Remove a connection at the aggregator and delete its local data."""
    service.disconnect(db, email, connection_id)


# ------------------------------------------------------------------
# Diagnostics
# ------------------------------------------------------------------


@router.get("/status")
def get_status(
    metrics: bool = False,
    logs: bool = False,
    logs_level: Optional[str] = None,
    logs_count: int = Query(default=20, ge=1, le=100),
    email: str = Depends(get_current_user_email),
    context: ClientContext = Depends(get_client_context),
):
    """Operating mode, sandbox quota, rate limiter and optional metrics/logs."""
    data = {
        "mode": settings.SALTEDGE_STATUS,
        "environment": settings.ENVIRONMENT,
        "api_version": "v6",
        "base_url": settings.SALTEDGE_BASE_URL,
        "webhook_strict": settings.webhook_strict,
        "test_status": context.sandbox_quota.status(),
        "rate_limit": context.rate_limiter.status(),
        "cached_customers": len(context.customer_cache),
    }
    if metrics:
        data["performance"] = context.metrics.snapshot()
    if logs:
        data["logs"] = [
            entry.to_dict()
            for entry in context.audit_log.entries(level=logs_level, last_n=logs_count)
        ]
    return data


@router.post("/status")
def manage_status(
    request: StatusActionRequest,
    email: str = Depends(get_current_user_email),
    context: ClientContext = Depends(get_client_context),
):
    """Reset the sandbox counter, clear audit logs and/or the customer cache."""
    if request.action not in STATUS_ACTIONS:
        raise HTTPException(
            status_code=400, detail=f"Unsupported action, use one of {STATUS_ACTIONS}"
        )

    if request.action in ("reset", "reset_all"):
        context.sandbox_quota.reset()
    if request.action in ("clear_logs", "reset_all"):
        context.audit_log.clear()
    if request.action in ("clear_cache", "reset_all"):
        context.customer_cache.clear()
    logger.info("Diagnostics action %s applied", request.action)
    return {"action": request.action, "test_status": context.sandbox_quota.status()}
