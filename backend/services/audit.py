"""
Centralized Audit Logging for the Ledger API

Tracks key actions for compliance and traceability:
- Authentication (login, failed login, registration)
- Transactions (add, delete, CSV import)
- Reconciliation (calculate, export)

Storage: audit_logs table. Entries are append-only.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Union
import logging

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.ledger_models import AuditLogDB, utc_now

logger = logging.getLogger(__name__)


# ==================== ENUMS ====================

class AuditAction(str, Enum):
    """Auditable actions. The names drive module/status derivation below."""

    # Authentication
    USER_LOGIN = "USER_LOGIN"
    LOGIN_FAILED = "LOGIN_FAILED"
    USER_REGISTER = "USER_REGISTER"

    # Transactions
    ADD_TRANSACTION = "ADD_TRANSACTION"
    DELETE_TRANSACTION = "DELETE_TRANSACTION"
    CSV_IMPORT = "CSV_IMPORT"
    CSV_IMPORT_FAILED = "CSV_IMPORT_FAILED"

    # Reconciliation
    RECONCILIATION_CALCULATED = "RECONCILIATION_CALCULATED"
    EXPORT_RECONCILIATION_CSV = "EXPORT_RECONCILIATION_CSV"
    EXPORT_RECONCILIATION_EXCEL = "EXPORT_RECONCILIATION_EXCEL"
    EXPORT_RECONCILIATION_PDF = "EXPORT_RECONCILIATION_PDF"


class AuditModule(str, Enum):
    AUTHENTICATION = "Authentication"
    TRANSACTIONS = "Transactions"
    RECONCILIATION = "Reconciliation"
    REPORTS = "Reports"
    DASHBOARD = "Dashboard"
    SYSTEM = "System"


# First matching keyword wins
MODULE_KEYWORDS = [
    (("LOGIN", "LOGOUT", "FAILED"), AuditModule.AUTHENTICATION),
    (("TRANSACTION",), AuditModule.TRANSACTIONS),
    (("RECONCILIATION",), AuditModule.RECONCILIATION),
    (("CSV", "PDF", "EXPORT", "REPORT"), AuditModule.REPORTS),
    (("DASHBOARD",), AuditModule.DASHBOARD),
]


def module_for_action(action: Optional[str]) -> str:
    if not action:
        return AuditModule.SYSTEM.value
    for keywords, module in MODULE_KEYWORDS:
        if any(keyword in action for keyword in keywords):
            return module.value
    return AuditModule.SYSTEM.value


def status_for_action(action: Optional[str]) -> str:
    if action and ("FAILED" in action or "ERROR" in action):
        return "FAILED"
    return "SUCCESS"


# ==================== MODELS ====================

class AuditLogEntry(BaseModel):
    """Audit log row as shown in the audit screens"""
    id: int
    timestamp: Optional[datetime] = None
    action: str
    module: str
    description: str
    status: str


def _db_to_entry(row: AuditLogDB) -> AuditLogEntry:
    return AuditLogEntry(
        id=row.id,
        timestamp=row.timestamp,
        action=row.action,
        module=module_for_action(row.action),
        description=row.details or "",
        status=status_for_action(row.action),
    )


# ==================== AUDIT SERVICE ====================

class AuditService:
    """
    Writes and reads the audit trail.

    Usage:
        await AuditService(db).log_action(
            AuditAction.ADD_TRANSACTION,
            user_id=current_user.id,
            details="Transaction added: ..."
        )
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log_action(
        self,
        action: Union[AuditAction, str],
        user_id: Optional[int] = None,
        details: Optional[str] = None,
    ) -> Optional[AuditLogDB]:
        """
        Append an audit entry.

        A failed write is logged and rolled back; it never fails the
        operation being audited.
        """
        action_str = action.value if isinstance(action, AuditAction) else str(action)
        entry = AuditLogDB(
            action=action_str,
            user_id=user_id,
            details=details,
            timestamp=utc_now(),
        )

        try:
            self.db.add(entry)
            await self.db.commit()
        except Exception as e:
            logger.error(f"Failed to write audit log {action_str}: {e}")
            await self.db.rollback()
            return None

        log_level = logging.WARNING if status_for_action(action_str) == "FAILED" else logging.INFO
        logger.log(log_level, f"AUDIT: {action_str} by {user_id or 'anonymous'} - {details or ''}")
        return entry

    async def list_entries(self, limit: Optional[int] = None) -> List[AuditLogEntry]:
        """All entries, newest first."""
        query = select(AuditLogDB).order_by(AuditLogDB.timestamp.desc(), AuditLogDB.id.desc())
        if limit:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return [_db_to_entry(row) for row in result.scalars().all()]
