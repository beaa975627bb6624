"""
Reconciliation Service

Business logic around the balance rules:
- Loading the client's transactions for a period
- Running the calculation and cross-checking it
- Persisting snapshots and reading them back
- Audit logging
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.ledger_models import ReconciliationDB, utc_now
from reconciliation.matching_rules.balance_rules import (
    BalanceMatchingRules,
    ReconciliationResult,
    balance_rules,
)
from sentry_integration import capture_exception
from services.audit import AuditService, AuditAction
from services.transaction_service import TransactionRepository

logger = logging.getLogger(__name__)


class ReconciliationAuditEvent:
    """Structured log event names for reconciliation operations."""
    CALCULATED = "reconciliation.calculated"
    SNAPSHOT_SAVED = "reconciliation.snapshot_saved"
    CROSS_CHECK_FAILED = "reconciliation.cross_check_failed"
    DEGRADED = "reconciliation.degraded"


def log_reconciliation_event(
    event_type: str,
    client_name: str,
    details: Dict[str, Any],
    reconciliation_id: Optional[int] = None,
    level: int = logging.INFO
):
    """Log reconciliation event for audit trail."""
    log_entry = {
        "event": event_type,
        "client_name": client_name,
        "reconciliation_id": reconciliation_id,
        "details": details,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
    logger.log(level, f"Reconciliation event: {event_type}", extra=log_entry)


def snapshot_to_dict(row: ReconciliationDB) -> Dict[str, Any]:
    return {
        "id": row.id,
        "clientName": row.client_name,
        "bankName": row.bank_name,
        "fromDate": row.from_date.isoformat() if row.from_date else None,
        "toDate": row.to_date.isoformat() if row.to_date else None,
        "openingBalance": float(row.opening_balance),
        "bankBalance": float(row.bank_balance),
        "totalCredit": float(row.total_credit),
        "totalDebit": float(row.total_debit),
        "systemBalance": float(row.system_balance),
        "difference": float(row.difference),
        "status": row.status,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
    }


class ReconciliationService:
    """
    Reconciles a client's recorded transactions against a bank balance.
    """

    def __init__(self, db: AsyncSession, rules: Optional[BalanceMatchingRules] = None):
        self.db = db
        self.rules = rules or balance_rules
        self.transactions = TransactionRepository(db)
        self.audit = AuditService(db)

    async def calculate(
        self,
        client_name: str,
        bank_name: Optional[str],
        from_date: Optional[date],
        to_date: Optional[date],
        opening_balance: float = 0.0,
        bank_balance: float = 0.0,
        user_id: Optional[int] = None,
    ) -> ReconciliationResult:
        """
        Run the calculation for one client and period.

        Exceptions propagate; use calculate_or_default() where a
        best-effort answer is wanted instead.
        """
        from_date, to_date = self.rules.resolve_period(from_date, to_date)
        transactions = await self.transactions.list_completed_in_period(from_date, to_date)

        result = self.rules.calculate(
            client_name=client_name,
            bank_name=bank_name,
            from_date=from_date,
            to_date=to_date,
            opening_balance=opening_balance,
            bank_balance=bank_balance,
            transactions=transactions,
        )

        self.validate(result, transactions)

        log_reconciliation_event(
            ReconciliationAuditEvent.CALCULATED,
            result.client_name,
            {
                "bank_name": result.bank_name,
                "period": result.period,
                "transaction_count": result.transaction_count,
                "difference": str(result.difference),
                "status": result.match_status.value,
            },
        )
        await self.audit.log_action(
            AuditAction.RECONCILIATION_CALCULATED,
            user_id=user_id,
            details=(
                f"Reconciliation for {result.client_name} ({result.bank_name}) {result.period}: "
                f"{result.match_status.value}, difference {result.difference}"
            ),
        )
        return result

    async def calculate_or_default(
        self,
        client_name: Optional[str],
        bank_name: Optional[str],
        from_date: Optional[date],
        to_date: Optional[date],
        opening_balance: float = 0.0,
        bank_balance: float = 0.0,
        user_id: Optional[int] = None,
    ) -> ReconciliationResult:
        """
        Live reconciliation: never raises.

        Without a client, or when the calculation fails, the answer is the
        zero-transaction result for the requested balances.
        """
        resolved_from, resolved_to = self.rules.resolve_period(from_date, to_date)

        if not client_name or not client_name.strip():
            logger.warning("Live reconciliation requested without a client")
            return self.rules.zero_result(
                None, bank_name, resolved_from, resolved_to, opening_balance, bank_balance
            )

        try:
            return await self.calculate(
                client_name, bank_name, resolved_from, resolved_to,
                opening_balance, bank_balance, user_id=user_id
            )
        except Exception as e:
            logger.error(f"Error calculating reconciliation for {client_name}: {e}", exc_info=True)
            capture_exception(e, client_name=client_name)
            log_reconciliation_event(
                ReconciliationAuditEvent.DEGRADED,
                client_name,
                {"error": str(e)},
                level=logging.ERROR,
            )
            return self.rules.zero_result(
                client_name, bank_name, resolved_from, resolved_to, opening_balance, bank_balance
            )

    def validate(self, result: ReconciliationResult, transactions: List[Any]) -> bool:
        """Cross-check a result against the raw rows; logs a warning on mismatch."""
        problems = self.rules.cross_check(result, transactions)
        if problems:
            log_reconciliation_event(
                ReconciliationAuditEvent.CROSS_CHECK_FAILED,
                result.client_name,
                {"problems": problems},
                level=logging.WARNING,
            )
            return False
        return True

    # ==================== SNAPSHOTS ====================

    async def save(self, result: ReconciliationResult) -> ReconciliationDB:
        snapshot = ReconciliationDB(
            client_name=result.client_name,
            bank_name=result.bank_name,
            from_date=result.from_date,
            to_date=result.to_date,
            opening_balance=result.opening_balance,
            bank_balance=result.bank_balance,
            total_credit=result.total_credit,
            total_debit=result.total_debit,
            system_balance=result.system_balance,
            difference=result.difference,
            status=result.match_status.value,
            created_at=utc_now(),
        )
        self.db.add(snapshot)
        await self.db.commit()
        await self.db.refresh(snapshot)

        log_reconciliation_event(
            ReconciliationAuditEvent.SNAPSHOT_SAVED,
            result.client_name,
            {"status": snapshot.status},
            reconciliation_id=snapshot.id,
        )
        return snapshot

    async def get(self, reconciliation_id: int) -> Optional[ReconciliationDB]:
        result = await self.db.execute(
            select(ReconciliationDB).where(ReconciliationDB.id == reconciliation_id)
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> List[ReconciliationDB]:
        """All snapshots, most recent first."""
        result = await self.db.execute(
            select(ReconciliationDB).order_by(
                ReconciliationDB.created_at.desc(), ReconciliationDB.id.desc()
            )
        )
        return list(result.scalars().all())
