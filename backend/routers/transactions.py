from fastapi import APIRouter, Body, Depends, File, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, Dict, List, Optional
import logging

from config import get_settings
from database import get_db
from middleware.auth import get_current_user_required, require_bookkeeping
from reconciliation.export_registry import ExportFormat, content_disposition, export_registry
from reconciliation.matching_rules.balance_rules import ReconciliationResult
from reconciliation.services.reconciliation_service import ReconciliationService
from services.audit import AuditService
from services.auth import AuthUser
from services.transaction_service import (
    TransactionService,
    TransactionFilter,
    TransactionDTO,
    DashboardSummary,
)
from utils.validation_errors import parse_amount, parse_iso_date

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/transactions", tags=["Transactions"])

settings = get_settings()


def _transaction_service(db: AsyncSession) -> TransactionService:
    return TransactionService(db, max_upload_bytes=settings.csv_upload_max_bytes)


# ==================== TRANSACTIONS ====================

@router.get("", response_model=List[TransactionDTO])
async def list_transactions(
    from_date: Optional[str] = Query(None, alias="fromDate", description="yyyy-MM-dd, inclusive"),
    to_date: Optional[str] = Query(None, alias="toDate", description="yyyy-MM-dd, inclusive"),
    type: Optional[str] = Query(None, description="CREDIT, DEBIT or All"),
    status: Optional[str] = Query(None, description="PENDING, COMPLETED or All"),
    client: Optional[str] = Query(None, description="Case-insensitive partial client name"),
    current_user: AuthUser = Depends(get_current_user_required),
    db: AsyncSession = Depends(get_db)
):
    """
    List transactions, newest first.

    Filters:
    - fromDate/toDate: inclusive date range
    - type/status: "All" or blank means no filter
    - client: partial, case-insensitive match on client name
    """
    filters = TransactionFilter.from_query(from_date, to_date, type, status, client)
    return await _transaction_service(db).list_transactions(filters)


@router.post("", response_model=dict)
async def create_transaction(
    payload: Dict[str, Any] = Body(...),
    current_user: AuthUser = Depends(get_current_user_required),
    db: AsyncSession = Depends(get_db)
):
    """
    Record a manual transaction.

    Required: date, type, clientName, bankName, description, category, amount.
    """
    transaction = await _transaction_service(db).create_transaction(payload, current_user)
    return {
        "success": True,
        "message": "Transaction added successfully",
        "transactionId": transaction.id,
    }


@router.delete("/{transaction_id}", response_model=dict)
async def delete_transaction(
    transaction_id: int,
    current_user: AuthUser = Depends(get_current_user_required),
    db: AsyncSession = Depends(get_db)
):
    """Delete a transaction. Accountants only."""
    await _transaction_service(db).delete_transaction(transaction_id, current_user)
    return {"success": True, "message": "Transaction deleted successfully"}


@router.get("/clients", response_model=List[str])
async def list_clients(
    current_user: AuthUser = Depends(get_current_user_required),
    db: AsyncSession = Depends(get_db)
):
    """Distinct client names, sorted"""
    return await _transaction_service(db).list_clients()


@router.get("/dashboard/summary", response_model=DashboardSummary)
async def dashboard_summary(
    current_user: AuthUser = Depends(get_current_user_required),
    db: AsyncSession = Depends(get_db)
):
    return await _transaction_service(db).dashboard_summary()


@router.post("/upload-csv", response_model=dict)
async def upload_csv(
    file: UploadFile = File(...),
    current_user: AuthUser = Depends(require_bookkeeping),
    db: AsyncSession = Depends(get_db)
):
    """
    Import transactions from a CSV file.

    The header must contain date, type, client, description and amount
    columns. Rows that cannot be parsed are skipped.
    """
    content = await file.read()
    saved = await _transaction_service(db).import_csv(file.filename, content, current_user)
    return {
        "success": True,
        "message": "CSV processed successfully",
        "transactionsSaved": saved,
    }


# ==================== LIVE RECONCILIATION ====================

async def _live_result(
    db: AsyncSession,
    user: AuthUser,
    client: Optional[str],
    bank: Optional[str],
    from_date: Optional[str],
    to_date: Optional[str],
    opening_balance: Optional[str],
    bank_balance: Optional[str],
) -> ReconciliationResult:
    return await ReconciliationService(db).calculate_or_default(
        client_name=client,
        bank_name=bank,
        from_date=parse_iso_date(from_date),
        to_date=parse_iso_date(to_date),
        opening_balance=parse_amount(opening_balance, "openingBalance", default=0.0),
        bank_balance=parse_amount(bank_balance, "bankBalance", default=0.0),
        user_id=user.id,
    )


async def _export(
    export_format: ExportFormat,
    result: ReconciliationResult,
    user: AuthUser,
    db: AsyncSession
) -> Response:
    config = export_registry.get_config(export_format)
    filename = config.filename(result)
    response = Response(
        content=config.render(result),
        media_type=config.media_type,
        headers={"Content-Disposition": content_disposition(filename)},
    )

    # Only a response that was built gets an audit entry
    await AuditService(db).log_action(
        config.audit_action,
        user_id=user.id,
        details=f"Reconciliation export {filename} for {result.client_name} ({result.period})",
    )
    return response


@router.get("/reconciliation", response_model=dict)
async def live_reconciliation(
    from_date: Optional[str] = Query(None, alias="fromDate"),
    to_date: Optional[str] = Query(None, alias="toDate"),
    client: Optional[str] = Query(None),
    bank: Optional[str] = Query(None),
    opening_balance: Optional[str] = Query(None, alias="openingBalance"),
    bank_balance: Optional[str] = Query(None, alias="bankBalance"),
    current_user: AuthUser = Depends(get_current_user_required),
    db: AsyncSession = Depends(get_db)
):
    """
    Reconcile a client's ledger against a bank balance without storing it.

    Missing dates default to the last 30 days. Failures degrade to a
    zero-transaction result instead of an error.
    """
    result = await _live_result(
        db, current_user, client, bank, from_date, to_date, opening_balance, bank_balance
    )
    return result.to_dict()


@router.get("/reconciliation/export/csv")
async def export_reconciliation_csv(
    from_date: Optional[str] = Query(None, alias="fromDate"),
    to_date: Optional[str] = Query(None, alias="toDate"),
    client: Optional[str] = Query(None),
    bank: Optional[str] = Query(None),
    opening_balance: Optional[str] = Query(None, alias="openingBalance"),
    bank_balance: Optional[str] = Query(None, alias="bankBalance"),
    current_user: AuthUser = Depends(require_bookkeeping),
    db: AsyncSession = Depends(get_db)
):
    result = await _live_result(
        db, current_user, client, bank, from_date, to_date, opening_balance, bank_balance
    )
    return await _export(ExportFormat.CSV, result, current_user, db)


@router.get("/reconciliation/export/excel")
async def export_reconciliation_excel(
    from_date: Optional[str] = Query(None, alias="fromDate"),
    to_date: Optional[str] = Query(None, alias="toDate"),
    client: Optional[str] = Query(None),
    bank: Optional[str] = Query(None),
    opening_balance: Optional[str] = Query(None, alias="openingBalance"),
    bank_balance: Optional[str] = Query(None, alias="bankBalance"),
    current_user: AuthUser = Depends(require_bookkeeping),
    db: AsyncSession = Depends(get_db)
):
    """Tab-separated export that spreadsheet applications open directly"""
    result = await _live_result(
        db, current_user, client, bank, from_date, to_date, opening_balance, bank_balance
    )
    return await _export(ExportFormat.EXCEL, result, current_user, db)


@router.get("/reconciliation/export/pdf")
async def export_reconciliation_pdf(
    from_date: Optional[str] = Query(None, alias="fromDate"),
    to_date: Optional[str] = Query(None, alias="toDate"),
    client: Optional[str] = Query(None),
    bank: Optional[str] = Query(None),
    opening_balance: Optional[str] = Query(None, alias="openingBalance"),
    bank_balance: Optional[str] = Query(None, alias="bankBalance"),
    current_user: AuthUser = Depends(get_current_user_required),
    db: AsyncSession = Depends(get_db)
):
    """Printable HTML report of the reconciliation"""
    result = await _live_result(
        db, current_user, client, bank, from_date, to_date, opening_balance, bank_balance
    )
    return await _export(ExportFormat.PDF, result, current_user, db)
