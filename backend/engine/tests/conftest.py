"""Shared pytest fixtures for engine and API integration tests.

Provides:
- test_client: session-scoped FastAPI TestClient
- session_id: per-test API session with automatic cleanup
- sample_tree: the two-category table (Electronics / Furniture)
- SAMPLE_TABLE_ROWS: nested rows behind sample_tree
"""

from __future__ import annotations

import pytest
from starlette.testclient import TestClient

from app.main import app
from app.session import _drop_session
from engine.core import Tree, build_tree


SAMPLE_TABLE_ROWS = [
    {
        "id": "electronics",
        "label": "Electronics",
        "value": 1500,
        "children": [
            {"id": "phones", "label": "Phones", "value": 800},
            {"id": "laptops", "label": "Laptops", "value": 700},
        ],
    },
    {
        "id": "furniture",
        "label": "Furniture",
        "value": 1000,
        "children": [
            {"id": "tables", "label": "Tables", "value": 300},
            {"id": "chairs", "label": "Chairs", "value": 700},
        ],
    },
]


# ── Trees ──────────────────────────────────────────────────────────────────

@pytest.fixture()
def sample_tree() -> Tree:
    return build_tree(SAMPLE_TABLE_ROWS)


# ── TestClient ─────────────────────────────────────────────────────────────

@pytest.fixture(scope="session")
def test_client():
    with TestClient(app) as client:
        yield client


# ── Session management ─────────────────────────────────────────────────────

@pytest.fixture()
def session_id(test_client: TestClient):
    """Create a fresh API session on the sample table, drop it on teardown."""
    resp = test_client.post("/api/sessions")
    assert resp.status_code == 200
    sid = resp.json()["session_id"]
    yield sid
    _drop_session(sid)
