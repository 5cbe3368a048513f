"""Connection service - drives the bank-connection lifecycle.

A connection moves through these states:

    NONE -> PENDING            start_connection opens a hosted consent session
    PENDING -> ACTIVE          success webhook with remote status "active"; sync runs
    PENDING -> PENDING         success webhook with any other status, fetching, interactive
    PENDING -> ERROR           error webhook
    ACTIVE -> PENDING          refresh_connection / reconnect; local data kept
    any -> NONE                disconnect

Every transition appends a SyncLogEntry. Syncs triggered by webhooks are
handed to a SyncDispatcher so the webhook can be acknowledged immediately.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from sqlalchemy.orm import Session, sessionmaker

from config import settings
from database import get_session_local
from integrations.aggregator_protocol import (
    AggregatorClient,
    ConnectionStage,
    ConnectSession,
    LifecycleState,
    SyncResult,
)
from integrations.error_translator import ErrorKind
from integrations.exceptions import AggregatorError, ConnectionOwnershipError
from integrations.saltedge_client import DEFAULT_CONSENT_SCOPES, DEFAULT_WIDGET_OPTIONS
from integrations.telemetry import SandboxQuota
from models import BankConnection
from services.storage_service import StorageService
from services.sync_service import SyncAbortedError, SyncService

logger = logging.getLogger(__name__)

REFRESH_MODES = ("refresh", "reconnect")
SYNC_RETRY_BACKOFF_SECONDS = 2.0

MSG_CONNECTED = "Votre compte bancaire a été connecté avec succès !"
MSG_PROCESSING = "Connexion en cours de traitement..."
MSG_INACTIVE = "La connexion bancaire est inactive. Veuillez la renouveler."
MSG_DISABLED = "La connexion bancaire a été désactivée par la banque."
MSG_UNVERIFIED = "Connexion créée mais vérification impossible."
MSG_FAILED = "Une erreur est survenue lors de la connexion bancaire."
MSG_FETCHING = "Récupération des données bancaires en cours..."
MSG_INTERACTIVE = "Votre banque demande une confirmation supplémentaire."
MSG_IN_PROGRESS = "Connexion bancaire en cours de finalisation."


@dataclass
class CallbackOutcome:
    """Where the browser should land after the hosted consent flow."""

    status: str  # "success" | "warning" | "error" | "info"
    message: str
    connection_id: Optional[str] = None


@dataclass
class StartedConnection:
    session: ConnectSession
    customer_id: str


class SyncDispatcher(Protocol):
    """Hands a sync job off to run after the current request returns."""

    def dispatch(self, connection_id: str, action: str) -> None:
        ...


class ConnectionService:
    """Orchestrates customer creation, consent sessions, webhooks and syncs."""

    def __init__(
        self,
        client: AggregatorClient,
        session_factory: Optional[sessionmaker] = None,
        sandbox_quota: Optional[SandboxQuota] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the service.

        Args:
            client: Aggregator client (real or mock).
            session_factory: Builds the DB session used by detached sync jobs.
                Defaults to the application session factory.
            sandbox_quota: Pending-mode test allowance to record attempts in.
            sleep: Back-off between sync retries (injectable for tests).
        """
        self._client = client
        self._session_factory = session_factory
        self._sandbox_quota = sandbox_quota
        self._sleep = sleep
        self.sync_service = SyncService(client)

    @property
    def return_url(self) -> str:
        return f"{settings.APP_BASE_URL.rstrip('/')}/api/saltedge/callback"

    def _new_session(self) -> Session:
        if self._session_factory is None:
            self._session_factory = get_session_local()
        return self._session_factory()

    def _owned_connection(self, db: Session, email: str, connection_id: str) -> BankConnection:
        user = StorageService.get_user_by_email(db, email)
        connection = (
            StorageService.get_user_connection(db, user.id, connection_id) if user else None
        )
        if connection is None:
            raise ConnectionOwnershipError(connection_id)
        return connection

    def _record_attempt(self, action: str, provider_code: Optional[str], success: bool) -> None:
        if self._sandbox_quota is not None:
            self._sandbox_quota.record(action, provider_code, success)

    # ------------------------------------------------------------------
    # NONE -> PENDING
    # ------------------------------------------------------------------

    def start_connection(
        self, db: Session, email: str, provider_code: Optional[str] = None
    ) -> StartedConnection:
        """Ensure the user's customer exists and open a hosted consent session.

        No connection record exists until the aggregator reports one.

        Raises:
            AggregatorError: If the customer or session cannot be created. A
                ``connect_failed`` error log entry is committed first.
        """
        user = StorageService.get_or_create_user(db, email)
        identifier = f"{settings.CUSTOMER_IDENTIFIER_PREFIX}_{email}"

        try:
            customer = self._client.create_customer(identifier)
            StorageService.get_or_create_customer_record(db, user, customer)
            session = self._client.create_connection_session(
                customer.id,
                provider_code=provider_code,
                consent_scopes=list(DEFAULT_CONSENT_SCOPES),
                return_url=self.return_url,
                locale=settings.SALTEDGE_LOCALE,
                widget_options={
                    **DEFAULT_WIDGET_OPTIONS,
                    "popular_providers_country": settings.SALTEDGE_POPULAR_COUNTRY,
                },
            )
        except AggregatorError as e:
            self._record_attempt("connection_failed", provider_code, False)
            StorageService.append_sync_log(
                db, user.id, "connect_failed", "error", f"{e.code}: {e.user_message}"
            )
            db.commit()
            raise

        self._record_attempt("connection_attempt", provider_code, True)
        StorageService.append_sync_log(
            db,
            user.id,
            "connect_started",
            LifecycleState.PENDING.value,
            f"Session de connexion créée ({provider_code or 'choix de la banque'})",
        )
        db.commit()
        logger.info("Connect session opened for customer %s", customer.id)
        return StartedConnection(session=session, customer_id=customer.id)

    # ------------------------------------------------------------------
    # Webhooks: PENDING -> ACTIVE | ERROR | PENDING
    # ------------------------------------------------------------------

    def _resolve_user_id(
        self, db: Session, connection_id: Optional[str], customer_id: Optional[str]
    ) -> Optional[str]:
        if connection_id:
            local = StorageService.get_connection(db, connection_id)
            if local is not None:
                return local.user_id
        if customer_id:
            customer = StorageService.find_customer_record(db, customer_id)
            if customer is not None:
                return customer.user_id
        return None

    def handle_webhook(
        self,
        db: Session,
        connection_id: Optional[str],
        stage: Optional[str],
        dispatcher: SyncDispatcher,
        customer_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Apply one aggregator notification. Never raises.

        Only ``stage=success`` with a remote status of ``active`` schedules a
        sync, through ``dispatcher``.
        """
        try:
            stage_value = ConnectionStage(stage)
        except ValueError:
            logger.info("Ignoring webhook for %s with unknown stage %r", connection_id, stage)
            return

        try:
            if stage_value == ConnectionStage.SUCCESS:
                self._handle_success_webhook(db, connection_id, customer_id, dispatcher)
            elif stage_value == ConnectionStage.ERROR:
                self._log_for(
                    db, connection_id, customer_id, "webhook_error", "error",
                    error_message or MSG_FAILED,
                )
            else:
                self._log_for(
                    db, connection_id, customer_id, f"webhook_{stage_value.value}",
                    "pending", f"Stage {stage_value.value}",
                )
        except Exception as e:
            db.rollback()
            logger.error("Webhook handling failed for %s: %s", connection_id, e, exc_info=True)

    def _log_for(
        self,
        db: Session,
        connection_id: Optional[str],
        customer_id: Optional[str],
        action: str,
        status: str,
        message: str,
    ) -> None:
        user_id = self._resolve_user_id(db, connection_id, customer_id)
        if user_id is None:
            logger.warning(
                "Webhook %s for unknown connection %s / customer %s: %s",
                action, connection_id, customer_id, message,
            )
            return
        StorageService.append_sync_log(db, user_id, action, status, message, connection_id)
        db.commit()

    def _handle_success_webhook(
        self,
        db: Session,
        connection_id: Optional[str],
        customer_id: Optional[str],
        dispatcher: SyncDispatcher,
    ) -> None:
        if not connection_id:
            logger.warning("Success webhook without connection_id")
            return

        try:
            remote = self._client.get_connection(connection_id)
        except AggregatorError as e:
            logger.error("Cannot fetch connection %s after webhook: %s", connection_id, e)
            self._log_for(
                db, connection_id, customer_id, "webhook_success", "error",
                f"Vérification de la connexion impossible: {e.code}",
            )
            return

        customer = StorageService.find_customer_record(db, remote.customer_id or customer_id or "")
        if customer is None:
            logger.error(
                "Success webhook for connection %s of unknown customer %s",
                connection_id, remote.customer_id,
            )
            return

        StorageService.update_connection_record(db, customer, remote)
        state = LifecycleState.from_remote_status(remote.status)
        if state != LifecycleState.ACTIVE:
            StorageService.append_sync_log(
                db, customer.user_id, "webhook_success", "pending",
                f"Connexion en attente (statut: {remote.status or 'inconnu'})",
                connection_id,
            )
            db.commit()
            return

        StorageService.append_sync_log(
            db, customer.user_id, "webhook_success", "success",
            "Connexion active, synchronisation planifiée", connection_id,
        )
        db.commit()
        dispatcher.dispatch(connection_id, "webhook_sync")

    # ------------------------------------------------------------------
    # Browser callback
    # ------------------------------------------------------------------

    def handle_callback(
        self,
        connection_id: Optional[str] = None,
        stage: Optional[str] = None,
        error: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> CallbackOutcome:
        """Decide the dashboard status for a consent-flow redirect.

        Precedence:
            1. an ``error`` / ``error_message`` parameter or ``stage=error``
            2. a connection id, mapped from its live status
            3. the ``fetching`` / ``interactive`` stages
            4. a generic in-progress message
        Failure to read the live status yields a warning, never an error.
        """
        if error or error_message or stage == ConnectionStage.ERROR.value:
            return CallbackOutcome("error", error_message or error or MSG_FAILED)

        if connection_id:
            try:
                remote = self._client.get_connection(connection_id)
            except AggregatorError as e:
                logger.warning("Callback could not verify connection %s: %s", connection_id, e)
                return CallbackOutcome("warning", MSG_UNVERIFIED, connection_id)

            state = LifecycleState.from_remote_status(remote.status)
            if state == LifecycleState.ACTIVE:
                return CallbackOutcome("success", MSG_CONNECTED, connection_id)
            if state == LifecycleState.INACTIVE:
                return CallbackOutcome("warning", MSG_INACTIVE, connection_id)
            if state == LifecycleState.DISABLED:
                return CallbackOutcome("warning", MSG_DISABLED, connection_id)
            return CallbackOutcome("info", MSG_PROCESSING, connection_id)

        if stage == ConnectionStage.FETCHING.value:
            return CallbackOutcome("info", MSG_FETCHING)
        if stage == ConnectionStage.INTERACTIVE.value:
            return CallbackOutcome("info", MSG_INTERACTIVE)
        return CallbackOutcome("info", MSG_IN_PROGRESS)

    # ------------------------------------------------------------------
    # ACTIVE -> PENDING, any -> NONE
    # ------------------------------------------------------------------

    def refresh_connection(
        self, db: Session, email: str, connection_id: str, mode: str = "refresh"
    ) -> ConnectSession:
        """Re-open a hosted session for an existing connection.

        Local accounts and transactions are left untouched; sync re-runs
        only when the next success webhook arrives.

        Raises:
            ValueError: If ``mode`` is not "refresh" or "reconnect".
            ConnectionOwnershipError: If the connection is not the user's.
            AggregatorError: If the aggregator refuses.
        """
        if mode not in REFRESH_MODES:
            raise ValueError(f"Unknown refresh mode {mode!r}, expected one of {REFRESH_MODES}")

        connection = self._owned_connection(db, email, connection_id)
        if mode == "reconnect":
            session = self._client.reconnect_connection(connection_id, self.return_url)
        else:
            session = self._client.refresh_connection(connection_id, self.return_url)

        StorageService.append_sync_log(
            db, connection.user_id, f"{mode}_started", "pending",
            f"Session de {mode} ouverte", connection_id,
        )
        db.commit()
        return session

    def disconnect(self, db: Session, email: str, connection_id: str) -> None:
        """Delete the connection remotely and locally.

        A connection the aggregator no longer knows counts as deleted.

        Raises:
            ConnectionOwnershipError: If the connection is not the user's.
            AggregatorError: For any remote failure other than not-found.
        """
        connection = self._owned_connection(db, email, connection_id)
        user_id = connection.user_id

        try:
            self._client.delete_connection(connection_id)
        except AggregatorError as e:
            if e.kind not in (ErrorKind.CONNECTION_NOT_FOUND, ErrorKind.NOT_FOUND):
                raise
            logger.info("Connection %s already removed at the aggregator", connection_id)

        StorageService.delete_connection(db, connection)
        StorageService.append_sync_log(
            db, user_id, "disconnect", "success", "Connexion bancaire supprimée", connection_id
        )
        db.commit()

    # ------------------------------------------------------------------
    # Sync jobs
    # ------------------------------------------------------------------

    def run_sync_job(self, connection_id: str, action: str = "webhook_sync") -> Optional[SyncResult]:
        """Detached sync entry point. Never raises.

        Uses its own DB session. Retryable aggregator failures are retried
        up to ``SYNC_MAX_ATTEMPTS`` times with a linear back-off; everything
        else is logged and recorded as a failed sync log entry.
        """
        attempts = max(1, settings.SYNC_MAX_ATTEMPTS)
        for attempt in range(1, attempts + 1):
            db = self._new_session()
            try:
                return self.sync_service.sync(db, connection_id, action)
            except AggregatorError as e:
                db.rollback()
                if e.retryable and attempt < attempts:
                    logger.warning(
                        "Sync of %s failed (attempt %d/%d), retrying: %s",
                        connection_id, attempt, attempts, e,
                    )
                    self._sleep(SYNC_RETRY_BACKOFF_SECONDS * attempt)
                    continue
                logger.error("Sync of %s failed: %s", connection_id, e)
                self._record_job_failure(db, connection_id, action, f"{e.code}: {e.user_message}")
                return None
            except SyncAbortedError as e:
                logger.error("Sync of %s aborted: %s", connection_id, e)
                return None
            except Exception as e:
                db.rollback()
                logger.error("Sync of %s crashed: %s", connection_id, e, exc_info=True)
                self._record_job_failure(db, connection_id, action, str(e))
                return None
            finally:
                db.close()
        return None

    def _record_job_failure(
        self, db: Session, connection_id: str, action: str, message: str
    ) -> None:
        try:
            local = StorageService.get_connection(db, connection_id)
            if local is None:
                return
            StorageService.append_sync_log(
                db, local.user_id, action, "error", f"Sync failed: {message}", connection_id
            )
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error("Could not record sync failure for %s: %s", connection_id, e)

    def trigger_manual_sync(self, db: Session, email: str, connection_id: str) -> SyncResult:
        """Synchronously sync a connection the user owns.

        Raises:
            ConnectionOwnershipError: If the connection is not the user's.
            SyncAbortedError: If the connection is not active.
            AggregatorError: If the connection cannot be fetched.
        """
        self._owned_connection(db, email, connection_id)
        return self.sync_service.sync(db, connection_id, "manual_sync")
