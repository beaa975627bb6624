"""
Unit Tests for the Audit Service

Tests:
- Module and status derivation from action names
- Writing entries and surviving write failures
- Listing entries as audit screen rows

Run with: pytest tests/test_audit_service.py -v
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from database.ledger_models import AuditLogDB
from services.audit import (
    AuditAction,
    AuditService,
    module_for_action,
    status_for_action,
)


class TestActionMapping:

    @pytest.mark.parametrize("action,module", [
        ("USER_LOGIN", "Authentication"),
        ("LOGIN_FAILED", "Authentication"),
        ("USER_LOGOUT", "Authentication"),
        ("CSV_IMPORT_FAILED", "Authentication"),
        ("ADD_TRANSACTION", "Transactions"),
        ("DELETE_TRANSACTION", "Transactions"),
        ("RECONCILIATION_CALCULATED", "Reconciliation"),
        ("EXPORT_RECONCILIATION_CSV", "Reconciliation"),
        ("CSV_IMPORT", "Reports"),
        ("GENERATE_REPORT", "Reports"),
        ("VIEW_DASHBOARD", "Dashboard"),
        ("USER_REGISTER", "System"),
        (None, "System"),
    ])
    def test_module_for_action(self, action, module):
        assert module_for_action(action) == module

    @pytest.mark.parametrize("action,status", [
        ("LOGIN_FAILED", "FAILED"),
        ("SYNC_ERROR", "FAILED"),
        ("USER_LOGIN", "SUCCESS"),
        (None, "SUCCESS"),
    ])
    def test_status_for_action(self, action, status):
        assert status_for_action(action) == status


class TestAuditService:

    @pytest.mark.asyncio
    async def test_log_action_adds_and_commits(self, mock_db):
        entry = await AuditService(mock_db).log_action(
            AuditAction.ADD_TRANSACTION, user_id=7, details="Transaction added"
        )

        mock_db.add.assert_called_once()
        mock_db.commit.assert_awaited_once()
        assert entry.action == "ADD_TRANSACTION"
        assert entry.user_id == 7
        assert entry.details == "Transaction added"

    @pytest.mark.asyncio
    async def test_log_action_failure_is_swallowed(self, mock_db):
        mock_db.commit = AsyncMock(side_effect=RuntimeError("db down"))

        entry = await AuditService(mock_db).log_action("USER_LOGIN", user_id=1)

        assert entry is None
        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_list_entries_maps_rows(self, mock_db, db_result):
        now = datetime(2025, 1, 2, tzinfo=timezone.utc)
        mock_db.execute.return_value = db_result([
            AuditLogDB(id=2, action="LOGIN_FAILED", timestamp=now, user_id=None, details=None),
            AuditLogDB(id=1, action="ADD_TRANSACTION", timestamp=now, user_id=1, details="added"),
        ])

        entries = await AuditService(mock_db).list_entries()

        assert [e.id for e in entries] == [2, 1]
        assert entries[0].module == "Authentication"
        assert entries[0].status == "FAILED"
        assert entries[0].description == ""
        assert entries[1].module == "Transactions"
        assert entries[1].description == "added"
