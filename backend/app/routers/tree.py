"""Table view, pending input, edit commit, reset and export routes."""

from __future__ import annotations

from datetime import date
from io import BytesIO
from typing import TYPE_CHECKING

import pandas as pd
from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from app.config import EXPORT_COLUMNS
from app.schemas import (
    EditRequest,
    EditResponse,
    PendingInputRequest,
    PendingInputResponse,
    TableResponse,
    TableRow,
)
from app.session import EditSession, _require_session
from engine.core import flatten, format_variance, grand_total, variance
from engine.io import tree_to_frame

if TYPE_CHECKING:
    from openpyxl import Workbook

router = APIRouter()


# ── Helpers ────────────────────────────────────────────────────────────────

def _table_rows(session: EditSession) -> tuple[list[TableRow], float, int]:
    """Walk the current tree in display order and derive per-row figures."""
    snap = session.snapshot()
    rows: list[TableRow] = []
    for node, depth in flatten(snap.tree):
        var = variance(node, snap.baseline)
        rows.append(TableRow(
            id=node.id,
            label=node.label,
            depth=depth,
            is_leaf=node.is_leaf,
            value=node.value,
            baseline=snap.baseline.get(node.id),
            variance=var,
            variance_display=format_variance(var),
            trend=None if not var else ("up" if var > 0 else "down"),
            pending_input=snap.pending.get(node.id, ""),
        ))
    return rows, grand_total(snap.tree), snap.edit_count


def _table_response(session: EditSession) -> TableResponse:
    rows, total, edit_count = _table_rows(session)
    return TableResponse(
        session_id=session.session_id,
        rows=rows,
        grand_total=total,
        edit_count=edit_count,
    )


# ── Routes ─────────────────────────────────────────────────────────────────

@router.get("/api/sessions/{session_id}/table", response_model=TableResponse)
def get_table(session_id: str) -> TableResponse:
    return _table_response(_require_session(session_id))


@router.put(
    "/api/sessions/{session_id}/inputs/{node_id}",
    response_model=PendingInputResponse,
)
def set_pending_input(
    session_id: str, node_id: str, payload: PendingInputRequest,
) -> PendingInputResponse:
    session = _require_session(session_id)
    try:
        session.set_pending(node_id, payload.raw)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Node '{node_id}' not found in session")
    return PendingInputResponse(session_id=session_id, node_id=node_id, raw=payload.raw)


@router.post(
    "/api/sessions/{session_id}/nodes/{node_id}/edit",
    response_model=EditResponse,
)
def commit_edit(session_id: str, node_id: str, payload: EditRequest) -> EditResponse:
    """Apply a relative/absolute edit.

    Invalid input and unknown node ids are not errors: the table comes back
    unchanged with ``applied: false`` and a reason.
    """
    session = _require_session(session_id)
    outcome = session.commit(node_id, payload.kind, payload.raw_value)
    rows, total, edit_count = _table_rows(session)
    return EditResponse(
        session_id=session_id,
        rows=rows,
        grand_total=total,
        edit_count=edit_count,
        node_id=node_id,
        applied=outcome.applied,
        reason=outcome.reason,
    )


@router.post("/api/sessions/{session_id}/reset", response_model=TableResponse)
def reset_session(session_id: str) -> TableResponse:
    session = _require_session(session_id)
    session.reset()
    return _table_response(session)


# ── Excel export ───────────────────────────────────────────────────────────

def _write_table_sheet(wb: Workbook, df: pd.DataFrame, total: float) -> None:
    """Write the flattened table with headers and a grand-total row."""
    from openpyxl.styles import Font
    from openpyxl.utils import get_column_letter

    ws = wb.create_sheet(title="Table")
    cols = [c for _, c in EXPORT_COLUMNS]

    for ci, (header, _) in enumerate(EXPORT_COLUMNS, start=1):
        ws.cell(row=1, column=ci, value=header).font = Font(bold=True)

    for ri, record in enumerate(df[cols].to_dict(orient="records"), start=2):
        for ci, col in enumerate(cols, start=1):
            val = record.get(col)
            if val is None or (isinstance(val, float) and pd.isna(val)):
                continue
            if col == "label":
                # indent children under their parent
                val = "    " * int(record["depth"]) + str(val)
            cell = ws.cell(row=ri, column=ci, value=val)
            if col in ("value", "baseline", "variance"):
                cell.number_format = "0.00"

    total_row = len(df) + 2
    ws.cell(row=total_row, column=1, value="Grand Total").font = Font(bold=True)
    value_col = cols.index("value") + 1
    cell = ws.cell(row=total_row, column=value_col, value=total)
    cell.font = Font(bold=True)
    cell.number_format = "0.00"

    ws.auto_filter.ref = f"A1:{get_column_letter(len(cols))}{len(df) + 1}"


@router.get("/api/sessions/{session_id}/table/export")
def export_table(session_id: str):
    """Export the current table as an Excel (.xlsx) file."""
    from openpyxl import Workbook

    session = _require_session(session_id)
    snap = session.snapshot()
    df = tree_to_frame(snap.tree, snap.baseline)

    wb = Workbook()
    wb.remove(wb.active)
    _write_table_sheet(wb, df, grand_total(snap.tree))

    buf = BytesIO()
    wb.save(buf)
    buf.seek(0)

    filename = f"table_export_{session_id[:8]}_{date.today().isoformat()}.xlsx"
    return StreamingResponse(
        buf,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
