"""
Shared fixtures for the ledger test suite.

Environment variables are set before any application module is imported,
since settings, the engine and the JWT helpers read them at import time.

Run with: pytest tests/ -v
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-ledger-api-unit-tests")
os.environ.setdefault("SENTRY_DSN", "")

from datetime import date  # noqa: E402
from decimal import Decimal  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402

from database.ledger_models import (  # noqa: E402
    TransactionDB, TransactionStatus, TransactionType
)
from services.auth import AuthUser  # noqa: E402


def make_transaction(
    client_name="ABC Corp",
    amount="100.00",
    txn_type=TransactionType.CREDIT,
    txn_date=date(2025, 1, 15),
    status=TransactionStatus.COMPLETED,
    bank_name="HDFC",
    txn_id=None,
):
    return TransactionDB(
        id=txn_id,
        date=txn_date,
        description="Test transaction",
        amount=Decimal(amount),
        type=txn_type,
        status=status,
        category="Sales",
        client_name=client_name,
        bank_name=bank_name,
        client_username="manual_entry",
        user_id=1,
    )


def result_with(rows):
    """Mimic the Result returned by AsyncSession.execute for a scalars() query"""
    result = MagicMock()
    result.scalars.return_value.all.return_value = list(rows)
    result.scalar_one_or_none.return_value = rows[0] if rows else None
    return result


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.execute = AsyncMock(return_value=result_with([]))
    db.add = MagicMock()
    db.add_all = MagicMock()
    return db


@pytest.fixture
def accountant():
    return AuthUser(id=1, username="accountant", role="ACCOUNTANT", email="acc@example.com")


@pytest.fixture
def admin():
    return AuthUser(id=2, username="admin", role="ADMIN", email="admin@example.com")


@pytest.fixture
def txn():
    """Factory for unsaved TransactionDB rows"""
    return make_transaction


@pytest.fixture
def db_result():
    """Factory for fake execute() results"""
    return result_with
