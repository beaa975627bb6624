"""
Query Tests against SQLite

Runs the transaction repository and the reconciliation service on an
in-memory aiosqlite database, so the SQL itself is executed:
- Inclusive date bounds and PENDING exclusion
- Mixed-case and non-ASCII client names
- Client list and dashboard totals

Run with: pytest tests/test_transaction_queries.py -v
"""

import pytest
import pytest_asyncio
from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from database.connection import Base
from database.ledger_models import MatchStatus, TransactionStatus, TransactionType
from reconciliation.services.reconciliation_service import ReconciliationService
from services.transaction_service import (
    TransactionFilter,
    TransactionRepository,
    TransactionService,
)

JAN_1 = date(2025, 1, 1)
JAN_31 = date(2025, 1, 31)


@pytest_asyncio.fixture
async def session():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as db:
        yield db

    await engine.dispose()


@pytest_asyncio.fixture
async def ledger(session, txn):
    session.add_all([
        txn(client_name="ÉCOLE SA", amount="100.00", txn_date=date(2025, 1, 10)),
        txn(client_name="ABC Corp ", amount="250.00", txn_date=JAN_1),
        txn(client_name="abc corp", amount="40.00", txn_type=TransactionType.DEBIT, txn_date=JAN_31),
        txn(client_name="ABC Corp", amount="999.00", txn_date=date(2024, 12, 31)),
        txn(client_name="ABC Corp", amount="999.00", txn_date=date(2025, 2, 1)),
        txn(client_name="ABC Corp", amount="500.00", status=TransactionStatus.PENDING),
        txn(client_name="XYZ Ltd", amount="75.00", txn_type=TransactionType.DEBIT, bank_name="SBI"),
    ])
    await session.commit()
    return session


class TestReconciliationQueries:

    @pytest.mark.asyncio
    async def test_period_rows_are_completed_and_inclusive(self, ledger):
        rows = await TransactionRepository(ledger).list_completed_in_period(JAN_1, JAN_31)

        assert sorted(float(r.amount) for r in rows) == [40.0, 75.0, 100.0, 250.0]
        assert all(r.status == TransactionStatus.COMPLETED for r in rows)

    @pytest.mark.asyncio
    async def test_non_ascii_client_matches_case_insensitively(self, ledger):
        result = await ReconciliationService(ledger).calculate(
            "école sa", None, JAN_1, JAN_31, 0, 100
        )

        assert result.transaction_count == 1
        assert result.total_credit == Decimal("100.00")
        assert result.match_status == MatchStatus.MATCHED

    @pytest.mark.asyncio
    async def test_mixed_case_client_with_bounds(self, ledger):
        result = await ReconciliationService(ledger).calculate(
            "  ABC CORP ", None, JAN_1, JAN_31, 1000, 1210
        )

        assert result.transaction_count == 2
        assert result.total_credit == Decimal("250.00")
        assert result.total_debit == Decimal("40.00")
        assert result.system_balance == Decimal("1210.00")
        assert result.match_status == MatchStatus.MATCHED


class TestListingQueries:

    @pytest.mark.asyncio
    async def test_partial_client_filter_folds_non_ascii(self, ledger):
        rows = await TransactionRepository(ledger).list_transactions(TransactionFilter(client="éco"))

        assert [r.client_name for r in rows] == ["ÉCOLE SA"]

    @pytest.mark.asyncio
    async def test_date_and_status_filters(self, ledger):
        filters = TransactionFilter.from_query("2025-01-01", "2025-01-31", "All", "COMPLETED", "abc")

        rows = await TransactionRepository(ledger).list_transactions(filters)

        assert sorted(r.date for r in rows) == [JAN_1, JAN_31]

    @pytest.mark.asyncio
    async def test_distinct_client_names(self, ledger):
        names = await TransactionService(ledger).list_clients()

        assert names == ["ABC Corp", "XYZ Ltd", "abc corp", "ÉCOLE SA"]

    @pytest.mark.asyncio
    async def test_dashboard_totals_exclude_pending(self, ledger):
        summary = await TransactionService(ledger).dashboard_summary()

        assert summary.totalCredit == 100.0 + 250.0 + 999.0 + 999.0
        assert summary.totalDebit == 40.0 + 75.0
        assert summary.balance == summary.totalCredit - summary.totalDebit
