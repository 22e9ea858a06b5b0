"""API integration tests: full workflow via FastAPI TestClient.

Tests the complete lifecycle:
  POST /api/sessions → create session (sample table or custom rows)
  POST /api/sessions/upload → create session from a .csv/.xlsx table
  GET  /api/sessions/{id}/table → verify flattened rows and grand total
  PUT  /api/sessions/{id}/inputs/{node} → stage pending input
  POST /api/sessions/{id}/nodes/{node}/edit → commit relative/absolute edits
  POST /api/sessions/{id}/reset → reload initial tree
  GET  /api/sessions/{id}/table/export → Excel export
  GET  /api/health → health check
"""

from __future__ import annotations

import io

from openpyxl import load_workbook
from starlette.testclient import TestClient

from app.session import _drop_session


def _rows_by_id(payload: dict) -> dict[str, dict]:
    return {row["id"]: row for row in payload["rows"]}


# ── Health check ───────────────────────────────────────────────────────────

class TestHealthCheck:
    def test_health_returns_ok(self, test_client: TestClient) -> None:
        resp = test_client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ── Session management ─────────────────────────────────────────────────────

class TestSessionManagement:
    def test_create_session_with_sample_table(self, test_client: TestClient) -> None:
        resp = test_client.post("/api/sessions")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "active"
        assert data["schema_version"] == "v1"
        assert data["node_count"] == 6
        assert data["edit_count"] == 0
        assert data["zero_sum_policy"] == "even"
        _drop_session(data["session_id"])

    def test_create_session_with_custom_rows(self, test_client: TestClient) -> None:
        resp = test_client.post("/api/sessions", json={"rows": [
            {"id": "ops", "label": "Operations", "children": [
                {"id": "rent", "label": "Rent", "value": 1200},
                {"id": "power", "label": "Power", "value": 300.5},
            ]},
        ]})
        assert resp.status_code == 200
        sid = resp.json()["session_id"]
        table = test_client.get(f"/api/sessions/{sid}/table").json()
        rows = _rows_by_id(table)
        assert rows["ops"]["value"] == 1500.5
        assert rows["rent"]["depth"] == 1
        assert table["grand_total"] == 1500.5
        _drop_session(sid)

    def test_create_session_from_csv_upload(self, test_client: TestClient) -> None:
        csv = (
            "id,parent_id,label,value\n"
            "ops,,Operations,\n"
            "rent,ops,Rent,1200\n"
            "power,ops,Power,300.5\n"
        )
        resp = test_client.post(
            "/api/sessions/upload",
            files={"file": ("budget.csv", csv.encode("utf-8"), "text/csv")},
        )
        assert resp.status_code == 200
        assert resp.json()["node_count"] == 3
        sid = resp.json()["session_id"]

        table = test_client.get(f"/api/sessions/{sid}/table").json()
        assert [(r["id"], r["depth"]) for r in table["rows"]] == [
            ("ops", 0), ("rent", 1), ("power", 1),
        ]
        assert table["grand_total"] == 1500.5
        _drop_session(sid)

    def test_create_session_from_xlsx_upload(self, test_client: TestClient) -> None:
        from openpyxl import Workbook

        wb = Workbook()
        ws = wb.active
        ws.append(["id", "parent_id", "label", "value"])
        ws.append(["ops", None, "Operations", None])
        ws.append(["rent", "ops", "Rent", 1200])
        buf = io.BytesIO()
        wb.save(buf)

        resp = test_client.post(
            "/api/sessions/upload",
            files={"file": ("budget.xlsx", buf.getvalue(), "application/octet-stream")},
        )
        assert resp.status_code == 200
        sid = resp.json()["session_id"]
        table = test_client.get(f"/api/sessions/{sid}/table").json()
        assert table["grand_total"] == 1200.0
        _drop_session(sid)

    def test_get_session(self, test_client: TestClient, session_id: str) -> None:
        resp = test_client.get(f"/api/sessions/{session_id}")
        assert resp.status_code == 200
        assert resp.json()["session_id"] == session_id

    def test_delete_session(self, test_client: TestClient) -> None:
        sid = test_client.post("/api/sessions").json()["session_id"]
        assert test_client.delete(f"/api/sessions/{sid}").status_code == 200
        assert test_client.get(f"/api/sessions/{sid}").status_code == 404


# ── Table view ─────────────────────────────────────────────────────────────

class TestTable:
    def test_rows_in_display_order(self, test_client: TestClient, session_id: str) -> None:
        data = test_client.get(f"/api/sessions/{session_id}/table").json()
        assert [(r["id"], r["depth"]) for r in data["rows"]] == [
            ("electronics", 0),
            ("phones", 1),
            ("laptops", 1),
            ("furniture", 0),
            ("tables", 1),
            ("chairs", 1),
        ]
        assert data["grand_total"] == 2500.0
        assert data["edit_count"] == 0

    def test_fresh_table_has_zero_variance(self, test_client: TestClient, session_id: str) -> None:
        rows = _rows_by_id(test_client.get(f"/api/sessions/{session_id}/table").json())
        assert rows["phones"]["baseline"] == 800.0
        assert rows["phones"]["variance"] == 0.0
        assert rows["phones"]["variance_display"] == "0.00"
        assert rows["phones"]["trend"] is None
        assert rows["phones"]["pending_input"] == ""


# ── Edits ──────────────────────────────────────────────────────────────────

class TestEdits:
    def test_percentage_edit_via_pending_input(self, test_client: TestClient, session_id: str) -> None:
        put = test_client.put(f"/api/sessions/{session_id}/inputs/phones", json={"raw": "10"})
        assert put.status_code == 200

        rows = _rows_by_id(test_client.get(f"/api/sessions/{session_id}/table").json())
        assert rows["phones"]["pending_input"] == "10"

        resp = test_client.post(
            f"/api/sessions/{session_id}/nodes/phones/edit", json={"kind": "percentage"},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["applied"] is True
        assert data["reason"] is None
        assert data["edit_count"] == 1
        rows = _rows_by_id(data)
        assert rows["phones"]["value"] == 880.0
        assert rows["phones"]["pending_input"] == ""
        assert rows["electronics"]["value"] == 1580.0
        assert data["grand_total"] == 2580.0

    def test_direct_edit_on_category_reports_variance(
        self, test_client: TestClient, session_id: str,
    ) -> None:
        resp = test_client.post(
            f"/api/sessions/{session_id}/nodes/electronics/edit",
            json={"kind": "absolute", "raw_value": "1650"},
        )
        rows = _rows_by_id(resp.json())
        assert rows["phones"]["value"] == 880.0
        assert rows["laptops"]["value"] == 770.0
        assert rows["electronics"]["variance"] == 10.0
        assert rows["electronics"]["variance_display"] == "10.00"
        assert rows["electronics"]["trend"] == "up"

        resp = test_client.post(
            f"/api/sessions/{session_id}/nodes/electronics/edit",
            json={"kind": "direct", "raw_value": "1350"},
        )
        rows = _rows_by_id(resp.json())
        assert rows["electronics"]["variance_display"] == "-10.00"
        assert rows["electronics"]["trend"] == "down"

    def test_invalid_input_is_a_silent_no_op(self, test_client: TestClient, session_id: str) -> None:
        before = test_client.get(f"/api/sessions/{session_id}/table").json()
        for raw in ("", "abc"):
            resp = test_client.post(
                f"/api/sessions/{session_id}/nodes/phones/edit",
                json={"kind": "direct", "raw_value": raw},
            )
            assert resp.status_code == 200
            data = resp.json()
            assert data["applied"] is False
            assert data["reason"] == "invalid_input"
            assert data["rows"] == before["rows"]

    def test_unknown_node_is_a_silent_no_op(self, test_client: TestClient, session_id: str) -> None:
        before = test_client.get(f"/api/sessions/{session_id}/table").json()
        resp = test_client.post(
            f"/api/sessions/{session_id}/nodes/nonexistent-id/edit",
            json={"kind": "direct", "raw_value": "100"},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["applied"] is False
        assert data["reason"] == "unknown_node"
        assert data["rows"] == before["rows"]

    def test_reset(self, test_client: TestClient, session_id: str) -> None:
        test_client.post(
            f"/api/sessions/{session_id}/nodes/chairs/edit",
            json={"kind": "absolute", "raw_value": "0"},
        )
        resp = test_client.post(f"/api/sessions/{session_id}/reset")
        assert resp.status_code == 200
        data = resp.json()
        assert data["grand_total"] == 2500.0
        assert data["edit_count"] == 0


# ── Export ─────────────────────────────────────────────────────────────────

class TestExport:
    def test_export_xlsx(self, test_client: TestClient, session_id: str) -> None:
        test_client.post(
            f"/api/sessions/{session_id}/nodes/phones/edit",
            json={"kind": "relative", "raw_value": "10"},
        )
        resp = test_client.get(f"/api/sessions/{session_id}/table/export")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        assert "attachment" in resp.headers["content-disposition"]

        wb = load_workbook(io.BytesIO(resp.content))
        ws = wb["Table"]
        assert ws.cell(row=1, column=1).value == "ID"
        assert ws.cell(row=2, column=1).value == "electronics"
        assert ws.cell(row=2, column=5).value == 1580.0
        assert ws.cell(row=3, column=3).value.strip() == "Phones"
        assert ws.cell(row=8, column=1).value == "Grand Total"
        assert ws.cell(row=8, column=5).value == 2580.0
