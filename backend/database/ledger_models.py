"""
Ledger API - Database Models

Tables:
- users: Login accounts (ADMIN / ACCOUNTANT)
- transactions: CREDIT/DEBIT ledger entries per client
- reconciliation: Append-only reconciliation snapshots
- audit_logs: Append-only audit trail
"""

from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, Text, Date, DateTime, Numeric, Index,
    Enum as SQLEnum
)

from database.connection import Base


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ==================== ENUMS ====================

class UserRole(str, PyEnum):
    ADMIN = "ADMIN"
    ACCOUNTANT = "ACCOUNTANT"


class TransactionType(str, PyEnum):
    """Direction of a ledger entry"""
    CREDIT = "CREDIT"  # increases balance
    DEBIT = "DEBIT"    # decreases balance


class TransactionStatus(str, PyEnum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class MatchStatus(str, PyEnum):
    MATCHED = "MATCHED"
    UNMATCHED = "UNMATCHED"


# ==================== DATABASE MODELS ====================

class UserDB(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=True)
    password = Column(String(255), nullable=False)  # bcrypt hash
    role = Column(
        SQLEnum(UserRole, name="user_role_enum", native_enum=False, length=20),
        nullable=False,
        default=UserRole.ACCOUNTANT
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    def __repr__(self):
        return f"<UserDB(id={self.id}, username={self.username}, role={self.role})>"


class TransactionDB(Base):
    """
    Ledger entry.

    client_name is a plain string, not a reference to a client table.
    Rows are never updated once written, only deleted.
    """
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, index=True)
    description = Column(Text, nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    type = Column(
        SQLEnum(TransactionType, name="transaction_type_enum", native_enum=False, length=10),
        nullable=False
    )
    status = Column(
        SQLEnum(TransactionStatus, name="transaction_status_enum", native_enum=False, length=20),
        nullable=False,
        default=TransactionStatus.COMPLETED
    )
    category = Column(String(100), nullable=True)
    client_name = Column(String(255), nullable=False, index=True)
    bank_name = Column(String(255), nullable=True)
    client_username = Column(String(100), nullable=True)
    user_id = Column(Integer, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        Index("ix_transactions_client_status_date", "client_name", "status", "date"),
    )

    def __repr__(self):
        return f"<TransactionDB(id={self.id}, client={self.client_name}, type={self.type}, amount={self.amount})>"


class ReconciliationDB(Base):
    """Stored snapshot of a reconciliation calculation."""
    __tablename__ = "reconciliation"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_name = Column(String(255), nullable=False, index=True)
    bank_name = Column(String(255), nullable=False)
    from_date = Column(Date, nullable=False)
    to_date = Column(Date, nullable=False)
    opening_balance = Column(Numeric(14, 2), nullable=False)
    bank_balance = Column(Numeric(14, 2), nullable=False)
    total_credit = Column(Numeric(14, 2), nullable=False)
    total_debit = Column(Numeric(14, 2), nullable=False)
    system_balance = Column(Numeric(14, 2), nullable=False)
    difference = Column(Numeric(14, 2), nullable=False)
    status = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)

    def __repr__(self):
        return f"<ReconciliationDB(id={self.id}, client={self.client_name}, status={self.status})>"


class AuditLogDB(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    action = Column(String(100), nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)
    user_id = Column(Integer, nullable=True)
    details = Column(Text, nullable=True)
