"""
Global mutable state shared across the application.

All modules access these via ``import app.state as state`` and then
``state._SESSIONS`` etc. Sessions live in process memory only; they are
gone when the server stops.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.session import EditSession

# session_id -> EditSession
_SESSIONS: dict[str, "EditSession"] = {}

# Guards insertions/removals in _SESSIONS. Per-session edits use the
# session's own lock.
_SESSIONS_LOCK = threading.Lock()
