"""Flat tabular <-> tree adapters.

Line items usually arrive as a flat table with an ``id``/``parent_id``
column pair (spreadsheet exports, query results). These helpers turn such a
table into a tree and flatten a tree back into a DataFrame for export.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import numpy as np
import pandas as pd

from engine.core.tree import Tree, TreeError, build_tree, flatten, iter_nodes, variance

REQUIRED_COLUMNS = ("id", "parent_id", "value")

FRAME_COLUMNS = [
    "id", "parent_id", "label", "depth", "is_leaf", "value", "baseline", "variance",
]


def _cell_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and np.isnan(value):
        return None
    text = str(value).strip()
    return text if text != "" else None


def _cell_float(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if value == "":
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if np.isnan(number):
        return None
    return number


def tree_from_frame(df: pd.DataFrame) -> Tree:
    """Build a tree from rows of ``id, parent_id, value[, label]``.

    Row order is child order. Roots have an empty ``parent_id``. Values on
    internal rows are ignored (recomputed from children). Raises
    ``TreeError`` on missing columns, duplicate ids, unknown parents and
    rows unreachable from any root (parent cycles).
    """
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise TreeError(f"Missing required columns: {missing}")

    rows: dict[str, dict[str, Any]] = {}
    links: list[tuple[str, str | None]] = []
    has_label = "label" in df.columns

    for record in df.to_dict(orient="records"):
        node_id = _cell_text(record.get("id"))
        if node_id is None:
            raise TreeError(f"Row without id: {record!r}")
        if node_id in rows:
            raise TreeError(f"Duplicate node id: '{node_id}'")
        label = _cell_text(record.get("label")) if has_label else None
        rows[node_id] = {
            "id": node_id,
            "label": label or node_id,
            "value": _cell_float(record.get("value")),
            "children": [],
        }
        links.append((node_id, _cell_text(record.get("parent_id"))))

    roots: list[dict[str, Any]] = []
    for node_id, parent_id in links:
        if parent_id is None:
            roots.append(rows[node_id])
            continue
        parent = rows.get(parent_id)
        if parent is None:
            raise TreeError(f"Node '{node_id}' references unknown parent '{parent_id}'")
        parent["children"].append(rows[node_id])

    tree = build_tree(roots)
    reachable = sum(1 for _ in iter_nodes(tree))
    if reachable != len(rows):
        raise TreeError(
            f"{len(rows) - reachable} row(s) are not reachable from a root (parent cycle)"
        )
    return tree


def tree_to_frame(tree: Tree, baseline: Mapping[str, float] | None = None) -> pd.DataFrame:
    """Flatten *tree* in display order into a DataFrame (``FRAME_COLUMNS``).

    ``baseline`` and ``variance`` are NaN/None when no baseline is given
    or a node has none.
    """
    baseline = baseline or {}
    ancestors: list[str] = []
    records: list[dict[str, Any]] = []

    for node, depth in flatten(tree):
        del ancestors[depth:]
        records.append({
            "id": node.id,
            "parent_id": ancestors[-1] if ancestors else None,
            "label": node.label,
            "depth": depth,
            "is_leaf": node.is_leaf,
            "value": node.value,
            "baseline": baseline.get(node.id),
            "variance": variance(node, baseline),
        })
        ancestors.append(node.id)

    return pd.DataFrame.from_records(records, columns=FRAME_COLUMNS)


def read_tree_table(path: str | Path, *, sheet_name: str | int = 0) -> Tree:
    """Load a tree from a ``.csv`` or ``.xlsx``/``.xls`` file."""
    input_path = Path(path)
    if not input_path.exists():
        raise FileNotFoundError(f"Tree file does not exist: {input_path}")

    suffix = input_path.suffix.lower()
    if suffix == ".csv":
        df = pd.read_csv(input_path, dtype={"id": str, "parent_id": str})
    elif suffix in {".xlsx", ".xls"}:
        df = pd.read_excel(input_path, sheet_name=sheet_name, dtype={"id": str, "parent_id": str})
    else:
        raise ValueError(f"Unsupported tree file type: '{suffix}'")
    return tree_from_frame(df)
