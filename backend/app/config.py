"""App constants, environment overrides and the default sample table."""

from __future__ import annotations

import os

from engine.config import DEFAULT_ZERO_SUM_POLICY, ZeroSumPolicy

# Zero-sum redistribution policy for every session created by this process.
ZERO_SUM_POLICY: ZeroSumPolicy = ZeroSumPolicy.parse(
    os.environ.get("ALLOCTABLE_ZERO_SUM_POLICY", DEFAULT_ZERO_SUM_POLICY.value)
)

# Dev frontends on common Vite/React ports; extra origins via a
# comma-separated ALLOCTABLE_CORS_ORIGINS.
CORS_ORIGINS: list[str] = [
    "http://localhost:8080",
    "http://127.0.0.1:8080",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
] + [o.strip() for o in os.environ.get("ALLOCTABLE_CORS_ORIGINS", "").split(",") if o.strip()]

SERVER_HOST: str = os.environ.get("ALLOCTABLE_HOST", "127.0.0.1")
SERVER_PORT: int = int(os.environ.get("ALLOCTABLE_PORT", "8000"))
LOG_LEVEL: str = os.environ.get("ALLOCTABLE_LOG_LEVEL", "INFO").upper()

# Table loaded into a session when the client does not send its own rows.
SAMPLE_ROWS: list[dict] = [
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

# Column headers for the .xlsx export, in sheet order.
EXPORT_COLUMNS: list[tuple[str, str]] = [
    ("ID", "id"),
    ("Parent", "parent_id"),
    ("Label", "label"),
    ("Level", "depth"),
    ("Value", "value"),
    ("Baseline", "baseline"),
    ("Variance (%)", "variance"),
]
