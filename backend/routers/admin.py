from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import logging

from database import get_db
from middleware.auth import require_admin
from services.audit import AuditService, AuditLogEntry
from services.auth import AuthService, AuthUser, UserResponse, user_to_response
from services.transaction_service import TransactionService, TransactionDTO, DashboardSummary

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["Admin"])

# All /admin endpoints require the ADMIN role.


# ==================== USER MANAGEMENT ====================

@router.get("/users", response_model=List[UserResponse])
async def list_users(
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    List all users. Password hashes are never returned.
    """
    try:
        users = await AuthService(db).list_users()
        return [user_to_response(u) for u in users]
    except Exception as e:
        logger.error(f"Error listing users: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# ==================== LEDGER OVERVIEW ====================

@router.get("/transactions", response_model=List[TransactionDTO])
async def list_all_transactions(
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """All transactions across every client, newest first"""
    try:
        return await TransactionService(db).list_transactions()
    except Exception as e:
        logger.error(f"Error listing transactions: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/summary", response_model=DashboardSummary)
async def get_summary(
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Global credit/debit totals; zeros when the totals cannot be loaded"""
    return await TransactionService(db).dashboard_summary()


@router.get("/audit-logs", response_model=List[AuditLogEntry])
async def list_audit_logs(
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    try:
        return await AuditService(db).list_entries()
    except Exception as e:
        logger.error(f"Error fetching audit logs: {e}")
        raise HTTPException(status_code=500, detail=str(e))
