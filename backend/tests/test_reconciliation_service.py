"""
Unit Tests for the Reconciliation Service

Tests:
- Calculation over transactions loaded from the session
- Audit entry per calculation
- Degraded zero result for the live path
- Snapshot persistence and conversion

Run with: pytest tests/test_reconciliation_service.py -v
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, patch

from database.ledger_models import (
    AuditLogDB, MatchStatus, ReconciliationDB, TransactionType
)
from reconciliation.services.reconciliation_service import (
    ReconciliationService,
    snapshot_to_dict,
)

JAN_1 = date(2025, 1, 1)
JAN_31 = date(2025, 1, 31)


@pytest.fixture
def service(mock_db):
    return ReconciliationService(mock_db)


@pytest.fixture
def abc_rows(txn):
    return [
        txn(amount="35000.00", txn_type=TransactionType.CREDIT),
        txn(amount="3000.00", txn_type=TransactionType.DEBIT),
    ]


class TestCalculate:

    @pytest.mark.asyncio
    async def test_calculate_matched(self, service, mock_db, db_result, abc_rows):
        mock_db.execute.return_value = db_result(abc_rows)

        result = await service.calculate("ABC Corp", "HDFC", JAN_1, JAN_31, 75000, 107000, user_id=1)

        assert result.match_status == MatchStatus.MATCHED
        assert result.system_balance == Decimal("107000.00")
        assert result.transaction_count == 2
        audit_rows = [c.args[0] for c in mock_db.add.call_args_list if isinstance(c.args[0], AuditLogDB)]
        assert [a.action for a in audit_rows] == ["RECONCILIATION_CALCULATED"]
        assert audit_rows[0].user_id == 1

    @pytest.mark.asyncio
    async def test_missing_dates_use_default_window(self, service, mock_db):
        result = await service.calculate("ABC Corp", None, None, None)

        assert result.to_date == date.today()
        assert (result.to_date - result.from_date).days == 30

    def test_validate_flags_inconsistent_result(self, service, abc_rows):
        result = service.rules.calculate("ABC Corp", None, JAN_1, JAN_31, 0, 0, abc_rows)
        assert service.validate(result, abc_rows) is True

        result.transaction_count = 5
        assert service.validate(result, abc_rows) is False


class TestLiveCalculation:

    @pytest.mark.asyncio
    async def test_blank_client_gives_zero_result(self, service, mock_db):
        result = await service.calculate_or_default("  ", None, JAN_1, JAN_31, 100, 100)

        assert result.transaction_count == 0
        assert result.match_status == MatchStatus.MATCHED
        mock_db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_degrades_to_zero_result(self, service, mock_db):
        mock_db.execute = AsyncMock(side_effect=RuntimeError("db down"))

        with patch("reconciliation.services.reconciliation_service.capture_exception") as capture:
            result = await service.calculate_or_default("ABC Corp", None, JAN_1, JAN_31, 500, 200)

        capture.assert_called_once()
        assert result.client_name == "ABC Corp"
        assert result.total_credit == Decimal("0.00")
        assert result.system_balance == Decimal("500.00")
        assert result.difference == Decimal("300.00")
        assert result.match_status == MatchStatus.UNMATCHED


class TestSnapshots:

    @pytest.mark.asyncio
    async def test_save_persists_snapshot(self, service, mock_db, abc_rows):
        result = service.rules.calculate("ABC Corp", "HDFC", JAN_1, JAN_31, 75000, 107000, abc_rows)

        snapshot = await service.save(result)

        assert isinstance(snapshot, ReconciliationDB)
        assert snapshot.status == "MATCHED"
        assert snapshot.system_balance == Decimal("107000.00")
        mock_db.add.assert_called_once_with(snapshot)
        mock_db.refresh.assert_awaited_once_with(snapshot)

    def test_snapshot_to_dict(self):
        row = ReconciliationDB(
            id=4,
            client_name="ABC Corp",
            bank_name="HDFC",
            from_date=JAN_1,
            to_date=JAN_31,
            opening_balance=Decimal("75000.00"),
            bank_balance=Decimal("107000.00"),
            total_credit=Decimal("35000.00"),
            total_debit=Decimal("3000.00"),
            system_balance=Decimal("107000.00"),
            difference=Decimal("0.00"),
            status="MATCHED",
            created_at=datetime(2025, 2, 1, tzinfo=timezone.utc),
        )

        data = snapshot_to_dict(row)

        assert data["id"] == 4
        assert data["fromDate"] == "2025-01-01"
        assert data["systemBalance"] == 107000.0
        assert data["status"] == "MATCHED"
