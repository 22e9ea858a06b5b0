"""
Allocation table backend – FastAPI service for hierarchical line-item editing.

=== ROLE IN THE SYSTEM ===
The frontend renders a table of nested line items (categories and
sub-categories with numeric values) and lets the user type a percentage or a
direct value against any row. This service owns the tree for each editing
session and is the only place values are recomputed.

=== WHAT IT DOES ===
1. SESSION MANAGEMENT: create/retrieve/drop UUID-based sessions, each holding
   a tree, a baseline snapshot and the rows' pending input text. Sessions live
   in memory only.
2. EDITS: relative (%) or absolute commits against one row, propagated by
   engine.services.propagation (scale children down, re-aggregate up).
3. VIEW: the table flattened in display order with depth, baseline,
   variance vs. baseline, and the grand total.
4. IMPORT/EXPORT: start a session from an uploaded .csv/.xlsx table; export
   the current table as .xlsx.

Routes:
  GET    /api/health
  POST   /api/sessions                              → Create session (optional rows)
  POST   /api/sessions/upload                       → Create session from .csv/.xlsx
  GET    /api/sessions/{id}                         → Session metadata
  DELETE /api/sessions/{id}                         → Drop session
  GET    /api/sessions/{id}/table                   → Flattened table + grand total
  PUT    /api/sessions/{id}/inputs/{node_id}        → Set pending input text
  POST   /api/sessions/{id}/nodes/{node_id}/edit    → Commit relative/absolute edit
  POST   /api/sessions/{id}/reset                   → Reload initial tree
  GET    /api/sessions/{id}/table/export            → Excel export
"""

from __future__ import annotations

import tempfile
from pathlib import Path

from fastapi import Body, FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from app.config import CORS_ORIGINS, SAMPLE_ROWS
from app.routers import tree as tree_router
from app.schemas import SessionCreateRequest, SessionMeta
from app.session import _create_session, _drop_session, _require_session
from engine.core import Tree, TreeError, build_tree
from engine.io import read_tree_table

app = FastAPI(title="Allocation Table")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(tree_router.router)


@app.get("/api/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/sessions", response_model=SessionMeta)
def create_session(payload: SessionCreateRequest | None = Body(default=None)) -> SessionMeta:
    if payload is not None and payload.rows is not None:
        rows = [row.model_dump() for row in payload.rows]
    else:
        rows = SAMPLE_ROWS

    try:
        tree = build_tree(rows)
    except TreeError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _start_session(tree)


@app.post("/api/sessions/upload", response_model=SessionMeta)
async def create_session_from_file(file: UploadFile = File(...)) -> SessionMeta:
    """Start a session from a flat id/parent_id/label/value table."""
    raw_filename = file.filename or "table.csv"
    if not raw_filename.lower().endswith((".csv", ".xlsx", ".xls")):
        raise HTTPException(status_code=400, detail="Only .csv/.xlsx/.xls files are supported")

    content = await file.read()
    with tempfile.TemporaryDirectory() as tmp:
        table_path = Path(tmp) / Path(raw_filename).name
        table_path.write_bytes(content)
        try:
            tree = read_tree_table(table_path)
        except ValueError as exc:
            # TreeError plus pandas parser errors
            raise HTTPException(status_code=400, detail=str(exc))
    return _start_session(tree)


def _start_session(tree: Tree) -> SessionMeta:
    if not tree:
        raise HTTPException(status_code=400, detail="A session needs at least one row")
    return _create_session(tree).meta()


@app.get("/api/sessions/{session_id}", response_model=SessionMeta)
def get_session(session_id: str) -> SessionMeta:
    return _require_session(session_id).meta()


@app.delete("/api/sessions/{session_id}")
def delete_session(session_id: str) -> dict[str, str]:
    if not _drop_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"status": "ok"}
