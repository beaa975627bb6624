from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import logging

from database import get_db
from services.audit import AuditService, AuditLogEntry
from middleware.auth import get_current_user_required
from services.auth import AuthUser

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/audit-logs", tags=["Audit Logs"])


@router.get("", response_model=List[AuditLogEntry])
async def list_audit_logs(
    limit: Optional[int] = Query(None, ge=1, le=5000, description="Max entries to return"),
    current_user: AuthUser = Depends(get_current_user_required),
    db: AsyncSession = Depends(get_db)
):
    """
    List audit logs, newest first.

    Each entry carries the module (Authentication, Transactions,
    Reconciliation, Reports, Dashboard or System) and a SUCCESS/FAILED
    status derived from the action name.
    """
    try:
        return await AuditService(db).list_entries(limit=limit)
    except Exception as e:
        logger.error(f"Error fetching audit logs: {e}")
        raise HTTPException(status_code=500, detail=str(e))
