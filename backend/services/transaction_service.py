"""
Ledger API - Transaction Service Layer

Business logic for:
- Transaction listing with filters
- Manual entry and deletion
- Client list and dashboard totals
- CSV import
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
import csv
import io
import logging
import math
import re

from pydantic import BaseModel
from sqlalchemy import select, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from database.ledger_models import (
    TransactionDB, TransactionType, TransactionStatus, UserRole, utc_now
)
from services.audit import AuditService, AuditAction
from services.auth import AuthUser
from utils.validation_errors import (
    LedgerNotFoundError,
    LedgerPermissionError,
    LedgerValidationError,
    parse_amount,
    parse_iso_date,
    raise_invalid_parameter,
    require_text,
)

logger = logging.getLogger(__name__)

MANUAL_ENTRY_USERNAME = "manual_entry"
CSV_IMPORT_USERNAME = "csv_import"
DEFAULT_CSV_CATEGORY = "Miscellaneous"

# Header keywords a CSV upload must contain (substring match on column names)
CSV_REQUIRED_KEYWORDS = ["date", "type", "client", "description", "amount"]


# ==================== PYDANTIC MODELS ====================

class TransactionDTO(BaseModel):
    """Transaction response model"""
    id: int
    date: Optional[str] = None
    description: Optional[str] = None
    amount: float
    type: str
    status: str
    category: Optional[str] = None
    clientName: Optional[str] = None
    bankName: Optional[str] = None
    clientUsername: Optional[str] = None
    userId: Optional[int] = None
    createdAt: Optional[str] = None


class TransactionFilter(BaseModel):
    """Filter criteria for listing transactions"""
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    type: Optional[TransactionType] = None
    status: Optional[TransactionStatus] = None
    client: Optional[str] = None

    @classmethod
    def from_query(
        cls,
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
        type: Optional[str] = None,
        status: Optional[str] = None,
        client: Optional[str] = None,
    ) -> "TransactionFilter":
        """Build from raw query strings; "All" and blanks mean no filter."""
        return cls(
            from_date=parse_iso_date(from_date),
            to_date=parse_iso_date(to_date),
            type=_parse_enum(TransactionType, type),
            status=_parse_enum(TransactionStatus, status),
            client=(client or "").strip() or None,
        )


class DashboardSummary(BaseModel):
    totalCredit: float = 0.0
    totalDebit: float = 0.0
    balance: float = 0.0


# ==================== HELPER FUNCTIONS ====================

def _parse_enum(enum_cls, value: Optional[str]):
    text = (value or "").strip().upper()
    if not text or text == "ALL":
        return None
    try:
        return enum_cls(text)
    except ValueError:
        return None


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    if not dt:
        return None
    return dt.isoformat()


def _enum_str(value) -> str:
    return value.value if hasattr(value, "value") else str(value)


def _db_to_dto(db_obj: TransactionDB) -> TransactionDTO:
    """Convert database model to response model"""
    return TransactionDTO(
        id=db_obj.id,
        date=db_obj.date.isoformat() if db_obj.date else None,
        description=db_obj.description,
        amount=float(db_obj.amount) if db_obj.amount is not None else 0.0,
        type=_enum_str(db_obj.type),
        status=_enum_str(db_obj.status) if db_obj.status else TransactionStatus.COMPLETED.value,
        category=db_obj.category,
        clientName=db_obj.client_name,
        bankName=db_obj.bank_name,
        clientUsername=db_obj.client_username,
        userId=db_obj.user_id,
        createdAt=_format_datetime(db_obj.created_at),
    )


def _normalize_header(name: str) -> str:
    return re.sub(r"[^a-z]", "", (name or "").lower())


# ==================== REPOSITORY ====================

class TransactionRepository:
    """Database access for ledger transactions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, transaction_id: int) -> Optional[TransactionDB]:
        result = await self.session.execute(
            select(TransactionDB).where(TransactionDB.id == transaction_id)
        )
        return result.scalar_one_or_none()

    async def list_transactions(self, filters: Optional[TransactionFilter] = None) -> List[TransactionDB]:
        filters = filters or TransactionFilter()
        conditions = []

        if filters.from_date:
            conditions.append(TransactionDB.date >= filters.from_date)
        if filters.to_date:
            conditions.append(TransactionDB.date <= filters.to_date)
        if filters.type:
            conditions.append(TransactionDB.type == filters.type)
        if filters.status:
            conditions.append(TransactionDB.status == filters.status)

        query = select(TransactionDB)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(TransactionDB.created_at.desc(), TransactionDB.id.desc())

        result = await self.session.execute(query)
        rows = list(result.scalars().all())
        if filters.client:
            # SQLite lower() only folds ASCII
            wanted = filters.client.casefold()
            rows = [row for row in rows if wanted in (row.client_name or "").casefold()]
        return rows

    async def list_completed_in_period(self, from_date: date, to_date: date) -> List[TransactionDB]:
        """
        COMPLETED rows dated inside [from_date, to_date].

        Client and bank matching is left to the balance rules.
        """
        query = select(TransactionDB).where(and_(
            TransactionDB.status == TransactionStatus.COMPLETED,
            TransactionDB.date >= from_date,
            TransactionDB.date <= to_date,
        ))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def distinct_client_names(self) -> List[str]:
        result = await self.session.execute(
            select(TransactionDB.client_name).distinct()
        )
        names = {name.strip() for name in result.scalars().all() if name and name.strip()}
        return sorted(names)

    async def completed_totals(self) -> Dict[str, Decimal]:
        """Sum of COMPLETED amounts per type"""
        result = await self.session.execute(
            select(TransactionDB.type, func.sum(TransactionDB.amount))
            .where(TransactionDB.status == TransactionStatus.COMPLETED)
            .group_by(TransactionDB.type)
        )
        totals = {TransactionType.CREDIT.value: Decimal("0"), TransactionType.DEBIT.value: Decimal("0")}
        for txn_type, total in result.all():
            totals[_enum_str(txn_type)] = Decimal(str(total or 0))
        return totals

    async def add(self, transaction: TransactionDB) -> TransactionDB:
        self.session.add(transaction)
        await self.session.commit()
        await self.session.refresh(transaction)
        return transaction

    async def add_many(self, transactions: List[TransactionDB]) -> int:
        if not transactions:
            return 0
        self.session.add_all(transactions)
        await self.session.commit()
        return len(transactions)

    async def delete(self, transaction: TransactionDB):
        await self.session.delete(transaction)
        await self.session.commit()


# ==================== SERVICE ====================

class TransactionService:
    """
    Transaction operations used by the transactions and admin routers.
    """

    REQUIRED_FIELDS = [
        ("date", "Date"),
        ("type", "Type"),
        ("clientName", "Client name"),
        ("bankName", "Bank name"),
        ("description", "Description"),
        ("category", "Category"),
        ("amount", "Amount"),
    ]

    def __init__(self, db: AsyncSession, max_upload_bytes: int = 10 * 1024 * 1024):
        self.db = db
        self.repository = TransactionRepository(db)
        self.audit = AuditService(db)
        self.max_upload_bytes = max_upload_bytes

    async def list_transactions(self, filters: Optional[TransactionFilter] = None) -> List[TransactionDTO]:
        rows = await self.repository.list_transactions(filters)
        return [_db_to_dto(row) for row in rows]

    async def list_clients(self) -> List[str]:
        return await self.repository.distinct_client_names()

    async def dashboard_summary(self) -> DashboardSummary:
        """Global totals over COMPLETED transactions; zeros when the query fails."""
        try:
            totals = await self.repository.completed_totals()
        except Exception as e:
            logger.error(f"Error loading dashboard summary: {e}", exc_info=True)
            return DashboardSummary()

        credit = totals[TransactionType.CREDIT.value]
        debit = totals[TransactionType.DEBIT.value]
        return DashboardSummary(
            totalCredit=float(credit),
            totalDebit=float(debit),
            balance=float(credit - debit),
        )

    # ==================== MANUAL ENTRY ====================

    def build_transaction(self, payload: Dict[str, Any], user: AuthUser) -> TransactionDB:
        """Validate a manual entry payload; raises LedgerValidationError."""
        values = {}
        for key, label in self.REQUIRED_FIELDS:
            values[key] = require_text(payload.get(key), key, f"{label} is required")

        txn_date = parse_iso_date(values["date"])
        if txn_date is None:
            raise_invalid_parameter("date", "Date must be in yyyy-MM-dd format", values["date"])

        txn_type = _parse_enum(TransactionType, values["type"])
        if txn_type is None:
            raise_invalid_parameter("type", "Type must be CREDIT or DEBIT", values["type"])

        amount = parse_amount(payload.get("amount"))
        if amount <= 0:
            raise_invalid_parameter("amount", "Amount must be greater than 0", amount)

        status = _parse_enum(TransactionStatus, payload.get("status")) or TransactionStatus.COMPLETED

        return TransactionDB(
            date=txn_date,
            description=values["description"],
            amount=Decimal(str(amount)),
            type=txn_type,
            status=status,
            category=values["category"],
            client_name=values["clientName"],
            bank_name=values["bankName"],
            client_username=MANUAL_ENTRY_USERNAME,
            user_id=user.id,
            created_at=utc_now(),
        )

    async def create_transaction(self, payload: Dict[str, Any], user: AuthUser) -> TransactionDB:
        transaction = await self.repository.add(self.build_transaction(payload, user))

        await self.audit.log_action(
            AuditAction.ADD_TRANSACTION,
            user_id=user.id,
            details=(
                f"Transaction added: {_enum_str(transaction.type)} {transaction.amount} "
                f"for {transaction.client_name} ({transaction.description})"
            ),
        )
        return transaction

    async def delete_transaction(self, transaction_id: int, user: AuthUser) -> None:
        if user.role != UserRole.ACCOUNTANT.value:
            raise LedgerPermissionError("Only accountants can delete transactions")

        transaction = await self.repository.get(transaction_id)
        if not transaction:
            raise LedgerNotFoundError(f"Transaction {transaction_id} not found")

        summary = f"{_enum_str(transaction.type)} {transaction.amount} for {transaction.client_name}"
        await self.repository.delete(transaction)

        await self.audit.log_action(
            AuditAction.DELETE_TRANSACTION,
            user_id=user.id,
            details=f"Transaction {transaction_id} deleted: {summary}",
        )

    # ==================== CSV IMPORT ====================

    def validate_upload(self, filename: Optional[str], content: bytes):
        if not filename or not filename.lower().endswith(".csv"):
            raise LedgerValidationError(
                "Only CSV files are allowed. Please upload a file with .csv extension.",
                parameter="file"
            )
        if not content:
            raise LedgerValidationError("File is empty. Please select a valid CSV file.", parameter="file")
        if len(content) > self.max_upload_bytes:
            limit_mb = self.max_upload_bytes // (1024 * 1024)
            raise LedgerValidationError(
                f"File size ({len(content) // (1024 * 1024)}MB) exceeds the maximum limit of {limit_mb}MB.",
                parameter="file"
            )

    def parse_csv(self, file_content: str) -> List[Dict[str, str]]:
        """
        Parse CSV content into row dictionaries keyed by the original headers.

        Raises LedgerValidationError when the header lacks a required column.
        """
        reader = csv.DictReader(io.StringIO(file_content))
        fieldnames = [name.strip() for name in (reader.fieldnames or []) if name]
        lowered = [name.lower() for name in fieldnames]

        missing = [kw for kw in CSV_REQUIRED_KEYWORDS if not any(kw in name for name in lowered)]
        if missing:
            raise LedgerValidationError(
                "Invalid CSV format. Required columns: date, type, client_name, description, amount",
                parameter="file"
            )

        rows = []
        for row in reader:
            cleaned = {
                (key or "").strip(): (value or "").strip()
                for key, value in row.items()
                if key is not None and not isinstance(value, list)
            }
            if any(cleaned.values()):
                rows.append(cleaned)
        return rows

    @staticmethod
    def _column(row: Dict[str, str], keyword: str, exact: tuple = ()) -> Optional[str]:
        """Find a value by exact normalized header name, else the first header containing keyword."""
        normalized = {_normalize_header(key): value for key, value in row.items()}
        for name in exact + (keyword,):
            if name in normalized:
                return normalized[name]
        for key, value in normalized.items():
            if keyword in key:
                return value
        return None

    def map_csv_row(self, row: Dict[str, str], user: AuthUser) -> TransactionDB:
        """Map one CSV row; raises ValueError for rows that cannot be imported."""
        date_text = self._column(row, "date")
        if date_text:
            txn_date = parse_iso_date(date_text)
            if txn_date is None:
                raise ValueError(f"unparsable date '{date_text}'")
        else:
            txn_date = date.today()

        txn_type = _parse_enum(TransactionType, self._column(row, "type"))
        if txn_type is None:
            raise ValueError("type must be CREDIT or DEBIT")

        client_name = self._column(row, "client", exact=("clientname",))
        if not client_name:
            raise ValueError("client name is empty")

        description = self._column(row, "description") or ""
        amount = float(self._column(row, "amount") or "")
        if not math.isfinite(amount) or amount <= 0:
            raise ValueError("amount must be positive")

        status = _parse_enum(TransactionStatus, self._column(row, "status")) or TransactionStatus.COMPLETED

        return TransactionDB(
            date=txn_date,
            description=description,
            amount=Decimal(str(amount)),
            type=txn_type,
            status=status,
            category=self._column(row, "category") or DEFAULT_CSV_CATEGORY,
            client_name=client_name,
            bank_name=self._column(row, "bank", exact=("bankname",)) or None,
            client_username=CSV_IMPORT_USERNAME,
            user_id=user.id,
            created_at=utc_now(),
        )

    def _read_upload(self, filename: Optional[str], content: bytes) -> List[Dict[str, str]]:
        self.validate_upload(filename, content)

        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise LedgerValidationError(
                "Failed to parse CSV file. Please ensure it contains valid CSV data.",
                parameter="file"
            )

        rows = self.parse_csv(text)
        if not rows:
            raise LedgerValidationError(
                "CSV file appears to be empty or contains no valid data.",
                parameter="file"
            )
        return rows

    async def import_csv(self, filename: Optional[str], content: bytes, user: AuthUser) -> int:
        """Import transactions from an uploaded CSV; returns the number saved."""
        try:
            rows = self._read_upload(filename, content)
        except LedgerValidationError as e:
            await self.audit.log_action(
                AuditAction.CSV_IMPORT_FAILED,
                user_id=user.id,
                details=f"CSV import {filename} rejected: {e.message}",
            )
            raise

        transactions = []
        for row_number, row in enumerate(rows, start=1):
            try:
                transactions.append(self.map_csv_row(row, user))
            except ValueError as e:
                logger.warning(f"Skipping CSV row {row_number} in {filename}: {e}")

        saved = await self.repository.add_many(transactions)

        await self.audit.log_action(
            AuditAction.CSV_IMPORT,
            user_id=user.id,
            details=f"CSV import {filename}: {saved} of {len(rows)} rows saved",
        )
        return saved
