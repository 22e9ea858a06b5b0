"""Pydantic models defining the REST contract between frontend and backend."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


# ── Session & Metadata ──────────────────────────────────────────────────────

class TreeRowInput(BaseModel):
    """One nested line item as sent by the client.

    ``value`` is required on leaves and ignored on rows with children.
    """
    id: str
    label: str = ""
    value: float | None = None
    children: list[TreeRowInput] = Field(default_factory=list)


TreeRowInput.model_rebuild()


class SessionCreateRequest(BaseModel):
    rows: list[TreeRowInput] | None = None


class SessionMeta(BaseModel):
    session_id: str
    created_at: str
    updated_at: str
    status: str = "active"
    schema_version: str = "v1"
    node_count: int
    edit_count: int = 0
    zero_sum_policy: str


# ── Table view ─────────────────────────────────────────────────────────────

class TableRow(BaseModel):
    id: str
    label: str
    depth: int
    is_leaf: bool
    value: float
    baseline: float | None = None
    variance: float | None = None
    variance_display: str | None = None
    trend: Literal["up", "down"] | None = None
    pending_input: str = ""


class TableResponse(BaseModel):
    session_id: str
    rows: list[TableRow]
    grand_total: float
    edit_count: int


# ── Edits ──────────────────────────────────────────────────────────────────

EditKindName = Literal["relative", "absolute", "percentage", "direct"]


class PendingInputRequest(BaseModel):
    raw: str = ""


class PendingInputResponse(BaseModel):
    session_id: str
    node_id: str
    raw: str


class EditRequest(BaseModel):
    """Commit an edit. With ``raw_value`` omitted the node's pending input is used."""
    kind: EditKindName
    raw_value: str | None = None


class EditResponse(TableResponse):
    node_id: str
    applied: bool
    reason: str | None = None
