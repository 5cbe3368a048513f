"""Dashboard API endpoints."""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.helpers import get_current_user_email
from database import get_db
from schemas.dashboard import (
    DashboardResponse,
    DeleteUserDataResponse,
    SyncLogResponse,
    TransactionResponse,
)
from services.dashboard_service import DashboardService
from services.storage_service import StorageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("", response_model=DashboardResponse)
def get_dashboard(
    email: str = Depends(get_current_user_email),
    db: Session = Depends(get_db),
):
    """Get the stored accounts, connections, recent transactions and balances."""
    return DashboardService.get_dashboard(db, email)


@router.get("/transactions", response_model=list[TransactionResponse])
def list_transactions(
    limit: int = Query(100, ge=1, le=500, description="Maximum number of transactions"),
    email: str = Depends(get_current_user_email),
    db: Session = Depends(get_db),
):
    return DashboardService.list_transactions(db, email, limit=limit)


@router.get("/sync-logs", response_model=list[SyncLogResponse])
def list_sync_logs(
    limit: int = Query(50, ge=1, le=200),
    email: str = Depends(get_current_user_email),
    db: Session = Depends(get_db),
):
    return DashboardService.list_sync_logs(db, email, limit=limit)


@router.delete("/user-data", response_model=DeleteUserDataResponse)
def delete_user_data(
    email: str = Depends(get_current_user_email),
    db: Session = Depends(get_db),
):
    """Delete the user and everything stored for them.

    Remote connections at the aggregator are left untouched.
    """
    deleted = StorageService.delete_all_user_data(db, email)
    db.commit()
    if deleted:
        logger.info("Deleted all stored data for %s", email)
    return DeleteUserDataResponse(deleted=deleted)
