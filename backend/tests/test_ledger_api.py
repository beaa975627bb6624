"""
API Tests for the Ledger Endpoints

Runs the FastAPI app in-process with TestClient. The database session is
replaced by a mock and the auth dependencies by fixed users.

Endpoints covered:
- POST /api/auth/login, POST /api/auth/register
- POST/DELETE /api/transactions, live reconciliation and exports
- POST /api/reconciliation/calculate, GET /api/reconciliation/{id}
- GET /api/admin/users, GET /api/audit-logs

Run with: pytest tests/test_ledger_api.py -v
"""

import pytest
from datetime import date
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from database import get_db
from database.ledger_models import AuditLogDB, TransactionType, UserDB, UserRole
from middleware.auth import get_current_user_required, require_admin, require_bookkeeping
from server import app
from services.auth import get_password_hash


@pytest.fixture
def client(mock_db):
    async def override_get_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def audited_actions(mock_db):
    return [
        c.args[0].action for c in mock_db.add.call_args_list
        if isinstance(c.args[0], AuditLogDB)
    ]


def login_as(user):
    def override():
        return user

    app.dependency_overrides[get_current_user_required] = override
    app.dependency_overrides[require_bookkeeping] = override
    app.dependency_overrides[require_admin] = override


# ==================== AUTH ====================

class TestAuthEndpoints:

    def test_login_invalid_credentials(self, client):
        response = client.post("/api/auth/login", json={"username": "ghost", "password": "x"})

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Invalid credentials"}

    def test_login_returns_token_and_role(self, client, mock_db, db_result):
        user = UserDB(
            id=1, username="boss", email="b@example.com",
            password=get_password_hash("pw123"), role=UserRole.ADMIN
        )
        mock_db.execute.return_value = db_result([user])

        response = client.post("/api/auth/login", json={"username": "boss", "password": "pw123"})

        assert response.status_code == 200
        body = response.json()
        assert body["role"] == "ADMIN"
        assert body["token"]

    def test_register(self, client):
        response = client.post(
            "/api/auth/register",
            json={"username": "new", "email": "n@example.com", "password": "pw"}
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "User registered"}

    def test_protected_endpoint_requires_token(self, client):
        response = client.get("/api/transactions")

        assert response.status_code == 401

    def test_invalid_token_is_rejected(self, client):
        response = client.get("/api/transactions", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401


# ==================== TRANSACTIONS ====================

class TestTransactionEndpoints:

    def test_create_transaction(self, client, mock_db, accountant):
        login_as(accountant)

        response = client.post("/api/transactions", json={
            "date": "2025-01-15",
            "type": "CREDIT",
            "clientName": "ABC Corp",
            "bankName": "HDFC",
            "description": "Invoice",
            "category": "Sales",
            "amount": 100,
        })

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Transaction added successfully"
        assert "transactionId" in body

    def test_create_transaction_missing_field(self, client, accountant):
        login_as(accountant)

        response = client.post("/api/transactions", json={"date": "2025-01-15", "type": "CREDIT"})

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Client name is required"}

    def test_delete_requires_accountant(self, client, admin):
        login_as(admin)

        response = client.delete("/api/transactions/1")

        assert response.status_code == 403
        assert response.json()["success"] is False

    def test_delete_unknown_transaction(self, client, accountant):
        login_as(accountant)

        response = client.delete("/api/transactions/999")

        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_upload_csv(self, client, accountant):
        login_as(accountant)
        content = (
            "date,type,client_name,description,amount\n"
            "2025-01-10,CREDIT,ABC Corp,Invoice,100\n"
        )

        response = client.post(
            "/api/transactions/upload-csv",
            files={"file": ("ledger.csv", content, "text/csv")}
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "CSV processed successfully",
            "transactionsSaved": 1,
        }

    def test_upload_rejects_other_extensions(self, client, accountant):
        login_as(accountant)

        response = client.post(
            "/api/transactions/upload-csv",
            files={"file": ("ledger.txt", "a,b\n", "text/plain")}
        )

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_live_reconciliation(self, client, mock_db, db_result, accountant, txn):
        login_as(accountant)
        mock_db.execute.return_value = db_result([
            txn(amount="35000.00", txn_type=TransactionType.CREDIT, txn_date=date(2025, 1, 10)),
            txn(amount="3000.00", txn_type=TransactionType.DEBIT, txn_date=date(2025, 1, 20)),
        ])

        response = client.get("/api/transactions/reconciliation", params={
            "client": "abc corp",
            "fromDate": "2025-01-01",
            "toDate": "2025-01-31",
            "openingBalance": "75000",
            "bankBalance": "107000",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["totalCredit"] == 35000.0
        assert body["totalDebit"] == 3000.0
        assert body["systemBalance"] == 107000.0
        assert body["difference"] == 0.0
        assert body["matchStatus"] == "MATCHED"
        assert body["transactionCount"] == 2

    def test_live_reconciliation_without_client(self, client, accountant):
        login_as(accountant)

        response = client.get("/api/transactions/reconciliation", params={"openingBalance": "10"})

        assert response.status_code == 200
        body = response.json()
        assert body["transactionCount"] == 0
        assert body["systemBalance"] == 10.0

    def test_csv_export(self, client, accountant):
        login_as(accountant)

        response = client.get("/api/transactions/reconciliation/export/csv", params={
            "client": "ABC Corp", "fromDate": "2025-01-01", "toDate": "2025-01-31",
        })

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        disposition = response.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="reconciliation_ABC_Corp_')
        assert '.csv"; filename*=UTF-8' in disposition
        assert response.text.startswith("Client Name,Bank Name,")

    def test_pdf_export_is_html(self, client, accountant):
        login_as(accountant)

        response = client.get("/api/transactions/reconciliation/export/pdf", params={"client": "ABC Corp"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert '.html"; ' in response.headers["content-disposition"]

    def test_export_for_non_latin1_client(self, client, mock_db, accountant):
        login_as(accountant)

        response = client.get("/api/transactions/reconciliation/export/csv", params={
            "client": "東京商事", "fromDate": "2025-01-01", "toDate": "2025-01-31",
        })

        assert response.status_code == 200
        disposition = response.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="reconciliation_')
        assert "filename*=UTF-8''reconciliation_%E6%9D%B1%E4%BA%AC%E5%95%86%E4%BA%8B_" in disposition
        assert response.text.splitlines()[1].startswith("東京商事,")
        assert "EXPORT_RECONCILIATION_CSV" in audited_actions(mock_db)

    def test_failed_export_is_not_audited(self, mock_db, accountant):
        app.dependency_overrides[get_db] = lambda: mock_db
        login_as(accountant)
        failing_client = TestClient(app, raise_server_exceptions=False)

        try:
            with patch(
                "reconciliation.export_registry.ExportConfig.render",
                side_effect=RuntimeError("render failed")
            ):
                response = failing_client.get(
                    "/api/transactions/reconciliation/export/csv", params={"client": "ABC Corp"}
                )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert "EXPORT_RECONCILIATION_CSV" not in audited_actions(mock_db)


# ==================== RECONCILIATION ====================

class TestReconciliationEndpoints:

    VALID_BODY = {
        "clientName": "ABC Corp",
        "bankName": "HDFC",
        "fromDate": "2025-01-01",
        "toDate": "2025-01-31",
        "openingBalance": 75000,
        "bankBalance": 107000,
    }

    def test_from_after_to_is_rejected_without_calculating(self, client, accountant):
        login_as(accountant)
        body = dict(self.VALID_BODY, fromDate="2025-02-01")

        with patch(
            "reconciliation.endpoints.reconciliation_api.ReconciliationService.calculate",
            new_callable=AsyncMock
        ) as calculate:
            response = client.post("/api/reconciliation/calculate", json=body)

        assert response.status_code == 400
        assert response.json()["success"] is False
        calculate.assert_not_awaited()

    @pytest.mark.parametrize("field", ["clientName", "bankName", "fromDate", "toDate"])
    def test_required_fields(self, client, accountant, field):
        login_as(accountant)
        body = dict(self.VALID_BODY)
        body.pop(field)

        response = client.post("/api/reconciliation/calculate", json=body)

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": f"{field} is required"}

    def test_unparsable_date(self, client, accountant):
        login_as(accountant)

        response = client.post(
            "/api/reconciliation/calculate", json=dict(self.VALID_BODY, toDate="31/01/2025")
        )

        assert response.status_code == 400

    def test_calculate_stores_snapshot(self, client, mock_db, db_result, accountant, txn):
        login_as(accountant)
        mock_db.execute.return_value = db_result([
            txn(amount="35000.00", txn_type=TransactionType.CREDIT, bank_name="HDFC"),
            txn(amount="3000.00", txn_type=TransactionType.DEBIT, bank_name="HDFC"),
        ])

        async def assign_id(instance):
            instance.id = 11

        mock_db.refresh = AsyncMock(side_effect=assign_id)

        response = client.post("/api/reconciliation/calculate", json=self.VALID_BODY)

        assert response.status_code == 200
        body = response.json()
        assert body["reconciliationId"] == 11
        assert body["status"] == "MATCHED"
        assert body["systemBalance"] == 107000.0
        assert body["transactionCount"] == 2
        assert body["fromDate"] == "2025-01-01"

    def test_database_failure_returns_error_body(self, client, mock_db, accountant):
        login_as(accountant)
        mock_db.execute = AsyncMock(side_effect=RuntimeError("db down"))

        with patch("reconciliation.endpoints.reconciliation_api.capture_exception") as capture:
            response = client.post("/api/reconciliation/calculate", json=self.VALID_BODY)

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "message": "Failed to calculate reconciliation: db down",
        }
        capture.assert_called_once()
        mock_db.add.assert_not_called()

    def test_get_missing_snapshot(self, client, accountant):
        login_as(accountant)

        response = client.get("/api/reconciliation/42")

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Reconciliation 42 not found"}


# ==================== ADMIN & AUDIT ====================

class TestAdminEndpoints:

    def test_list_users_hides_passwords(self, client, mock_db, db_result, admin):
        login_as(admin)
        mock_db.execute.return_value = db_result([
            UserDB(id=1, username="boss", email="b@example.com", password="hash", role=UserRole.ADMIN),
        ])

        response = client.get("/api/admin/users")

        assert response.status_code == 200
        users = response.json()
        assert users[0]["username"] == "boss"
        assert users[0]["role"] == "ADMIN"
        assert "password" not in users[0]

    def test_audit_logs(self, client, accountant):
        login_as(accountant)

        response = client.get("/api/audit-logs")

        assert response.status_code == 200
        assert response.json() == []


def test_health_live(client):
    response = client.get("/api/health/live")

    assert response.status_code == 200
    assert response.json()["status"] == "alive"