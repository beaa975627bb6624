"""
Reconciliation API Endpoints

REST API for persisted reconciliations:
- POST /api/reconciliation/calculate - Run and store a reconciliation
- GET /api/reconciliation/{reconciliation_id} - Get a stored reconciliation
- GET /api/reconciliation - List stored reconciliations, newest first

Live (non-persisted) reconciliation and file exports live on the
transactions router.
"""

import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from middleware.auth import get_current_user_required
from reconciliation.services.reconciliation_service import ReconciliationService, snapshot_to_dict
from sentry_integration import capture_exception
from services.auth import AuthUser
from utils.validation_errors import (
    LedgerError,
    LedgerNotFoundError,
    LedgerValidationError,
    parse_amount,
    raise_invalid_parameter,
    require_date,
    require_text,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reconciliation", tags=["Reconciliation"])


# ==================== Request/Response Models ====================

class CalculateReconciliationRequest(BaseModel):
    """Request to calculate and store a reconciliation."""
    clientName: Optional[str] = Field(default=None, description="Client name, matched case-insensitively")
    bankName: Optional[str] = Field(default=None, description="Bank name filter")
    fromDate: Optional[str] = Field(default=None, description="Period start, yyyy-MM-dd")
    toDate: Optional[str] = Field(default=None, description="Period end, yyyy-MM-dd")
    openingBalance: Optional[Any] = Field(default=None, description="Opening balance, defaults to 0")
    bankBalance: Optional[Any] = Field(default=None, description="Bank statement balance, defaults to 0")


class CalculateReconciliationResponse(BaseModel):
    reconciliationId: int
    clientName: str
    bankName: str
    fromDate: str
    toDate: str
    openingBalance: float
    totalCredit: float
    totalDebit: float
    systemBalance: float
    bankBalance: float
    difference: float
    status: str
    transactionCount: int


class ReconciliationSnapshotResponse(BaseModel):
    id: int
    clientName: str
    bankName: Optional[str] = None
    fromDate: Optional[str] = None
    toDate: Optional[str] = None
    openingBalance: float
    bankBalance: float
    totalCredit: float
    totalDebit: float
    systemBalance: float
    difference: float
    status: str
    createdAt: Optional[str] = None


# ==================== Endpoints ====================

@router.post("/calculate", response_model=CalculateReconciliationResponse)
async def calculate_reconciliation(
    request: CalculateReconciliationRequest,
    user: AuthUser = Depends(get_current_user_required),
    db: AsyncSession = Depends(get_db)
):
    """
    Calculate a reconciliation for one client and period and store the snapshot.

    All four of clientName, bankName, fromDate and toDate are required;
    nothing is calculated when fromDate is after toDate.
    """
    client_name = require_text(request.clientName, "clientName")
    bank_name = require_text(request.bankName, "bankName")
    from_date = require_date(request.fromDate, "fromDate")
    to_date = require_date(request.toDate, "toDate")

    if from_date > to_date:
        raise_invalid_parameter("fromDate", "fromDate must not be after toDate")

    opening_balance = parse_amount(request.openingBalance, "openingBalance", default=0.0)
    bank_balance = parse_amount(request.bankBalance, "bankBalance", default=0.0)

    service = ReconciliationService(db)
    try:
        result = await service.calculate(
            client_name, bank_name, from_date, to_date,
            opening_balance, bank_balance, user_id=user.id
        )
        snapshot = await service.save(result)
    except LedgerError:
        raise
    except Exception as e:
        logger.error(f"Error calculating reconciliation for {client_name}: {e}", exc_info=True)
        capture_exception(e, client_name=client_name, user_id=user.id)
        raise LedgerValidationError(f"Failed to calculate reconciliation: {e}")

    logger.info(
        f"Reconciliation {snapshot.id} stored for {result.client_name}: {result.match_status.value}",
        extra={"reconciliation_id": snapshot.id, "user_id": user.id}
    )

    return CalculateReconciliationResponse(
        reconciliationId=snapshot.id,
        clientName=result.client_name,
        bankName=result.bank_name,
        fromDate=result.from_date.isoformat(),
        toDate=result.to_date.isoformat(),
        openingBalance=float(result.opening_balance),
        totalCredit=float(result.total_credit),
        totalDebit=float(result.total_debit),
        systemBalance=float(result.system_balance),
        bankBalance=float(result.bank_balance),
        difference=float(result.difference),
        status=result.match_status.value,
        transactionCount=result.transaction_count,
    )


@router.get("/{reconciliation_id}", response_model=ReconciliationSnapshotResponse)
async def get_reconciliation(
    reconciliation_id: int,
    user: AuthUser = Depends(get_current_user_required),
    db: AsyncSession = Depends(get_db)
):
    """Get a stored reconciliation by ID."""
    snapshot = await ReconciliationService(db).get(reconciliation_id)
    if not snapshot:
        raise LedgerNotFoundError(f"Reconciliation {reconciliation_id} not found")
    return snapshot_to_dict(snapshot)


@router.get("", response_model=List[ReconciliationSnapshotResponse])
async def list_reconciliations(
    user: AuthUser = Depends(get_current_user_required),
    db: AsyncSession = Depends(get_db)
):
    """List stored reconciliations, most recent first."""
    snapshots = await ReconciliationService(db).list_all()
    return [snapshot_to_dict(s) for s in snapshots]
