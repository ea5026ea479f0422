"""
Tests for the import pipeline, the HTTP API and the server entry point.
"""

from datetime import date
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from bankrec import server
from bankrec.main import create_app
from bankrec.models import PaymentStatus, StatementStatus, VoucherType
from bankrec.reconciliation import AutoMatcher, StatementImporter


STATEMENT = (
    "Date,Description,Amount,Type,Balance\n"
    "05/03/2024,ACME PAYMENT,10000,credit,50000\n"
    "10/03/2024,NEFT GLOBEX SUPPLIES 99812,2500,debit,47500\n"
    "11/03/2024,BANK CHARGES,0,debit,47500\n"
)


class UnavailableRegistry:
    """Party registry whose backing store is down."""

    def __init__(self, session):
        self.session = session

    def list_active(self):
        raise RuntimeError("party registry unavailable")


@pytest.fixture
def importer(database, settings):
    return StatementImporter(database, settings=settings)


class TestStatementImporter:

    def test_import_and_auto_reconcile(self, importer, ledger, store):
        sale = ledger.transaction(VoucherType.SALE, date(2024, 3, 3), 1000000)
        vendor = ledger.party("Globex Supplies", party_type="vendor")

        result = importer.import_content(STATEMENT.encode("utf-8"), "march.csv")
        payload = result.to_dict()

        assert payload["success"] is True
        assert payload["fileName"] == "march.csv"
        assert payload["totalTransactions"] == 2
        assert payload["totalCredits"] == 10000.0
        assert payload["totalDebits"] == 2500.0
        assert payload["matchedCount"] == 1
        assert payload["unmatchedCount"] == 1
        assert payload["format"] == "DEFAULT"
        assert payload["confidence"] == 0.7
        assert payload["skippedRows"] == 1
        assert payload["transactions"][0]["suggestedParty"]["id"] == vendor

        assert ledger.payment_status(sale) == PaymentStatus.PAID
        status = store.get_statement(payload["statementId"]).statement.status
        assert status == StatementStatus.PARTIALLY_RECONCILED

    def test_same_bytes_twice_is_duplicate(self, importer, store, ledger):
        first = importer.import_content(STATEMENT.encode("utf-8"), "march.csv")
        second = importer.import_content(STATEMENT.encode("utf-8"), "march-copy.csv")

        assert first.success
        assert store.get_statement(first.statement_id).statement.record_count == 2
        assert second.to_dict() == {
            "success": False,
            "error": "DUPLICATE_FILE",
            "message": "This file has already been imported",
        }
        assert len(store.list_statements()) == 1
        assert ledger.line_count() == 2

    def test_no_transactions(self, importer, store):
        result = importer.import_content(b"Date,Description,Amount\n", "empty.csv")
        assert result.error == "NO_TRANSACTIONS_FOUND"
        assert store.list_statements() == []

    def test_unreadable_file(self, importer, tmp_path):
        result = importer.import_file(tmp_path / "missing.csv")
        assert not result.success
        assert result.error == "IMPORT_ERROR"

    def test_import_file_from_disk(self, importer, tmp_path):
        path = tmp_path / "hdfc_march.csv"
        path.write_bytes(("HDFC BANK\n" + STATEMENT).encode("utf-8"))

        result = importer.import_file(path, auto_reconcile=False)

        assert result.success
        assert result.file_name == "hdfc_march.csv"
        assert result.format == "HDFC"
        assert result.matched_count == 0
        assert result.unmatched_count == 2

    def test_latin1_content(self, importer):
        content = "Date,Description,Amount,Type\n05/03/2024,CAFÉ PARIS,12.50,debit\n"
        result = importer.import_content(content.encode("latin-1"), "latin.csv", auto_reconcile=False)

        assert result.success
        assert result.unmatched_preview[0].line.description == "CAFÉ PARIS"

    def test_matcher_failure_keeps_statement(self, importer, store):
        with patch.object(AutoMatcher, "_match_statement", side_effect=RuntimeError("boom")):
            result = importer.import_content(STATEMENT.encode("utf-8"), "march.csv")

        assert result.success
        assert result.matched_count == 0
        assert result.unmatched_count == 2
        assert any("auto-reconciliation failed" in w for w in result.warnings)
        assert store.get_statement(result.statement_id).statement.status == StatementStatus.IMPORTED

    def test_party_registry_failure_keeps_import(self, database, settings, store, ledger):
        matcher = AutoMatcher(
            database, registry_factory=UnavailableRegistry, store=store, settings=settings
        )
        importer = StatementImporter(database, store=store, matcher=matcher, settings=settings)

        result = importer.import_content(STATEMENT.encode("utf-8"), "march.csv")

        assert result.success
        assert result.unmatched_count == 2
        assert all(u.suggested_party is None for u in result.unmatched_preview)
        assert "party suggestions unavailable" in result.warnings
        assert store.get_statement(result.statement_id).statement.status == StatementStatus.IMPORTED
        assert ledger.line_count() == 2

        again = importer.import_content(STATEMENT.encode("utf-8"), "march.csv")
        assert again.error == "DUPLICATE_FILE"
        assert len(store.list_statements()) == 1

    def test_opening_balance_row_does_not_block_import(self, importer):
        content = (
            "Date,Description,Amount,Type,Balance\n"
            ",OPENING BALANCE,,,40000\n"
            "05/03/2024,ACME PAYMENT,10000,credit,50000\n"
        )
        result = importer.import_content(content.encode("utf-8"), "opening.csv", auto_reconcile=False)

        assert result.success
        assert result.total_transactions == 1
        assert result.skipped_rows == 1


class TestApi:

    @pytest.fixture
    def client(self, database, settings):
        return TestClient(create_app(database=database, settings=settings))

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_formats(self, client):
        formats = client.get("/api/formats").json()["formats"]
        assert "DEFAULT: Generic Bank Statement" in formats

    def test_import_list_and_export(self, client, ledger):
        ledger.transaction(VoucherType.SALE, date(2024, 3, 3), 1000000, voucher_no="INV-9")

        response = client.post(
            "/api/statements/import",
            json={"content": STATEMENT, "file_name": "march.csv"},
        )
        assert response.status_code == 200
        statement_id = response.json()["statementId"]

        listed = client.get("/api/statements").json()["statements"]
        assert [s["id"] for s in listed] == [statement_id]

        status = client.get(f"/api/statements/{statement_id}/status").json()
        assert status["matched"] == 1
        assert status["unmatched"] == 1
        assert status["matchPercentage"] == 50.0

        export = client.get(f"/api/statements/{statement_id}/export")
        assert export.status_code == 200
        assert export.headers["content-type"].startswith("text/csv")
        assert "INV-9" in export.text

    def test_duplicate_import_is_conflict(self, client):
        body = {"content": STATEMENT, "file_name": "march.csv"}
        assert client.post("/api/statements/import", json=body).status_code == 200

        response = client.post("/api/statements/import", json=body)
        assert response.status_code == 409
        assert response.json()["error"] == "DUPLICATE_FILE"

    def test_import_requires_a_source(self, client):
        assert client.post("/api/statements/import", json={}).status_code == 400

    def test_manual_flow(self, client, ledger):
        purchase = ledger.transaction(VoucherType.PURCHASE, date(2024, 4, 1), 250000)
        imported = client.post(
            "/api/statements/import",
            json={"content": STATEMENT, "file_name": "march.csv", "auto_reconcile": False},
        ).json()
        statement_id = imported["statementId"]
        details = client.get(f"/api/statements/{statement_id}").json()
        debit_line = next(t for t in details["transactions"] if t["type"] == "debit")

        matched = client.post(
            f"/api/lines/{debit_line['id']}/match",
            json={"transaction_id": purchase, "performed_by": "alice"},
        )
        assert matched.status_code == 200
        assert matched.json()["transaction"]["category"] == "manual"

        again = client.post(
            f"/api/lines/{debit_line['id']}/match",
            json={"transaction_id": purchase},
        )
        assert again.status_code == 409
        assert again.json()["error"] == "LINE_ALREADY_RECONCILED"

        undone = client.post(f"/api/lines/{debit_line['id']}/unmatch", json={"performed_by": "alice"})
        assert undone.json()["transaction"]["state"] == "unreconciled"

        ignored = client.post(f"/api/lines/{debit_line['id']}/ignore")
        assert ignored.json()["transaction"]["state"] == "ignored"

        audit = client.get(f"/api/lines/{debit_line['id']}/audit").json()["entries"]
        assert [e["action"] for e in audit] == ["MANUAL_MATCH", "UNMATCH", "IGNORE"]

    def test_reconcile_endpoint(self, client, ledger):
        imported = client.post(
            "/api/statements/import",
            json={"content": STATEMENT, "file_name": "march.csv", "auto_reconcile": False},
        ).json()
        ledger.transaction(VoucherType.SALE, date(2024, 3, 4), 1000000)

        response = client.post(f"/api/statements/{imported['statementId']}/reconcile")
        assert response.status_code == 200
        assert response.json()["matchedCount"] == 1

    def test_unreconciled_lines(self, client):
        client.post("/api/statements/import", json={"content": STATEMENT, "file_name": "march.csv"})
        lines = client.get("/api/lines/unreconciled").json()["transactions"]
        assert len(lines) == 2

    def test_delete_and_not_found(self, client):
        imported = client.post(
            "/api/statements/import",
            json={"content": STATEMENT, "file_name": "march.csv"},
        ).json()
        statement_id = imported["statementId"]

        assert client.delete(f"/api/statements/{statement_id}").status_code == 200
        missing = client.get(f"/api/statements/{statement_id}")
        assert missing.status_code == 404
        assert missing.json()["error"] == "STATEMENT_NOT_FOUND"


class TestServerEntryPoint:

    def test_main_serves_the_app(self, monkeypatch):
        monkeypatch.setattr("sys.argv", ["bankrec-server", "--host", "0.0.0.0", "--port", "9100"])
        with patch.object(server, "setup_logging") as setup_logging, \
                patch.object(server.uvicorn, "run") as run:
            server.main()

        setup_logging.assert_called_once()
        args, kwargs = run.call_args
        assert args == (server.app,)
        assert kwargs["host"] == "0.0.0.0"
        assert kwargs["port"] == 9100
