"""Edit sessions: caller-owned tree, baseline and pending inputs, plus the
in-memory session registry helpers used by the routers."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping

from fastapi import HTTPException

import app.state as state
from app.config import ZERO_SUM_POLICY
from app.schemas import SessionMeta
from engine.config import ZeroSumPolicy
from engine.core import Tree, build_baseline, find_path, iter_nodes, parse_raw_value, validate_tree
from engine.services import EditKind, apply_edit

_log = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class EditOutcome:
    applied: bool
    reason: str | None = None


@dataclass(frozen=True)
class SessionSnapshot:
    tree: Tree
    baseline: Mapping[str, float]
    pending: dict[str, str]
    edit_count: int


class EditSession:
    """One user's editing session over a single tree.

    The baseline is captured once here and never recomputed, so variance is
    always measured against the tree the session started with. Commits are
    serialised by a per-session lock: each edit sees the previous result.
    """

    def __init__(
        self,
        session_id: str,
        tree: Tree,
        *,
        zero_sum_policy: ZeroSumPolicy | str = ZERO_SUM_POLICY,
    ):
        validate_tree(tree)
        self.session_id = session_id
        self.zero_sum_policy = ZeroSumPolicy.parse(zero_sum_policy)
        self.created_at = _now_iso()
        self.updated_at = self.created_at
        self._initial_tree = tree
        self._tree = tree
        self._baseline = build_baseline(tree)
        self._pending: dict[str, str] = {}
        self._edit_count = 0
        self._lock = threading.Lock()

    @property
    def tree(self) -> Tree:
        return self._tree

    @property
    def baseline(self) -> Mapping[str, float]:
        return self._baseline

    @property
    def edit_count(self) -> int:
        return self._edit_count

    def has_node(self, node_id: str) -> bool:
        return find_path(self._tree, node_id) is not None

    def pending(self, node_id: str) -> str:
        return self._pending.get(node_id, "")

    def set_pending(self, node_id: str, raw: str) -> None:
        """Store the raw text being typed for *node_id*; no validation."""
        if not self.has_node(node_id):
            raise KeyError(node_id)
        with self._lock:
            self._pending[node_id] = raw

    def commit(self, node_id: str, kind: EditKind | str, raw: str | None = None) -> EditOutcome:
        """Apply an edit to *node_id*, using its pending input when *raw* is None.

        Invalid input leaves both the tree and the pending text untouched.
        Once the input parses, the pending entry is cleared even if the id
        turns out to be unknown.
        """
        kind = EditKind.parse(kind)
        with self._lock:
            if raw is None:
                raw = self._pending.get(node_id, "")
            if parse_raw_value(raw) is None:
                return EditOutcome(applied=False, reason="invalid_input")

            new_tree = apply_edit(
                self._tree, node_id, kind, raw, zero_sum_policy=self.zero_sum_policy,
            )
            self._pending.pop(node_id, None)

            if new_tree is self._tree:
                reason = "unknown_node" if not self.has_node(node_id) else "not_finite"
                return EditOutcome(applied=False, reason=reason)

            self._tree = new_tree
            self._edit_count += 1
            self.updated_at = _now_iso()

        _log.info(
            "Session %s: %s edit on '%s' applied (edit #%d)",
            self.session_id, kind.value, node_id, self._edit_count,
        )
        return EditOutcome(applied=True)

    def reset(self) -> None:
        """Reload the initial tree and drop pending inputs; baseline stays."""
        with self._lock:
            self._tree = self._initial_tree
            self._pending.clear()
            self._edit_count = 0
            self.updated_at = _now_iso()

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return SessionSnapshot(
                tree=self._tree,
                baseline=self._baseline,
                pending=dict(self._pending),
                edit_count=self._edit_count,
            )

    def meta(self) -> SessionMeta:
        return SessionMeta(
            session_id=self.session_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            node_count=sum(1 for _ in iter_nodes(self._tree)),
            edit_count=self._edit_count,
            zero_sum_policy=self.zero_sum_policy.value,
        )


# ── Session registry ────────────────────────────────────────────────────────

def _create_session(tree: Tree) -> EditSession:
    session = EditSession(str(uuid.uuid4()), tree)
    with state._SESSIONS_LOCK:
        state._SESSIONS[session.session_id] = session
    _log.info("Created session %s with %d node(s)", session.session_id, session.meta().node_count)
    return session


def _get_session(session_id: str) -> EditSession | None:
    return state._SESSIONS.get(session_id)


def _require_session(session_id: str) -> EditSession:
    session = _get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found. Create it first via POST /api/sessions")
    return session


def _drop_session(session_id: str) -> bool:
    with state._SESSIONS_LOCK:
        removed = state._SESSIONS.pop(session_id, None)
    if removed is not None:
        _log.info("Dropped session %s", session_id)
    return removed is not None
