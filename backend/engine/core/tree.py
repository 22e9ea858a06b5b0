"""
Tree Model: immutable line-item nodes and the read-only queries over them.

A tree is a forest, an ordered tuple of root ``Node`` objects. Leaf values
are authoritative; every internal node's value is the sum of its children,
rounded to ``DECIMALS`` places. Nodes are frozen, so every transformation
produces a new tree and callers holding the old one never see it change.

All traversals use explicit stacks; depth is bounded by memory only.

Examples:
    tree = build_tree([
        {"id": "electronics", "label": "Electronics", "children": [
            {"id": "phones", "label": "Phones", "value": 800},
            {"id": "laptops", "label": "Laptops", "value": 700},
        ]},
    ])
    grand_total(tree)                 # 1500.0
    [(n.id, d) for n, d in flatten(tree)]
    # [("electronics", 0), ("phones", 1), ("laptops", 1)]
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping

from engine.core.rounding import round2

_log = logging.getLogger(__name__)


class TreeError(ValueError):
    """Raised when input data cannot form a valid tree."""


@dataclass(frozen=True, slots=True)
class Node:
    id: str
    label: str
    value: float
    children: tuple["Node", ...] = ()

    @property
    def is_leaf(self) -> bool:
        return not self.children


Tree = tuple[Node, ...]


# ── Traversal ───────────────────────────────────────────────────────────────

def flatten(tree: Tree) -> Iterator[tuple[Node, int]]:
    """Yield ``(node, depth)`` in pre-order, roots at depth 0.

    Children follow their parent immediately and keep their order. Each call
    returns a fresh generator, so the sequence can be re-derived at will.
    """
    stack: list[tuple[Node, int]] = [(root, 0) for root in reversed(tree)]
    while stack:
        node, depth = stack.pop()
        yield node, depth
        stack.extend((child, depth + 1) for child in reversed(node.children))


def iter_nodes(tree: Tree) -> Iterator[Node]:
    """Pre-order iteration without depth."""
    for node, _depth in flatten(tree):
        yield node


def leaves(tree: Tree) -> Iterator[Node]:
    return (node for node in iter_nodes(tree) if node.is_leaf)


def find_path(tree: Tree, node_id: str) -> tuple[int, ...] | None:
    """Return the child-index path from the roots to *node_id*, or None."""
    stack: list[tuple[Node, tuple[int, ...]]] = [
        (root, (i,)) for i, root in reversed(list(enumerate(tree)))
    ]
    while stack:
        node, path = stack.pop()
        if node.id == node_id:
            return path
        stack.extend(
            (child, path + (i,)) for i, child in reversed(list(enumerate(node.children)))
        )
    return None


def node_at(tree: Tree, path: tuple[int, ...]) -> Node:
    siblings = tree
    node: Node | None = None
    for index in path:
        node = siblings[index]
        siblings = node.children
    if node is None:
        raise IndexError("Empty path")
    return node


def find_node(tree: Tree, node_id: str) -> Node | None:
    for node in iter_nodes(tree):
        if node.id == node_id:
            return node
    return None


# ── Derived values ──────────────────────────────────────────────────────────

def grand_total(tree: Tree) -> float:
    """Sum of all leaf values."""
    return round2(sum(node.value for node in leaves(tree)))


def build_baseline(tree: Tree) -> Mapping[str, float]:
    """Snapshot ``{id: value}`` for every node, read-only."""
    return MappingProxyType({node.id: node.value for node in iter_nodes(tree)})


def variance(node: Node, baseline: Mapping[str, float]) -> float | None:
    """Percentage drift of *node* from its baseline value.

    ``None`` when the node has no baseline, the baseline is 0, or the drift
    overflows; callers must treat that as "nothing to show", not as 0%.
    """
    base = baseline.get(node.id)
    if base is None or base == 0:
        return None
    ratio = (node.value - base) / base * 100
    if not math.isfinite(ratio):
        return None
    return round2(ratio)


def format_variance(value: float | None) -> str | None:
    if value is None:
        return None
    return f"{value:.2f}"


def check_invariant(tree: Tree) -> list[str]:
    """Ids of internal nodes whose value is not the sum of their children."""
    return [
        node.id
        for node in iter_nodes(tree)
        if node.children and round2(sum(c.value for c in node.children)) != node.value
    ]


def validate_tree(tree: Tree) -> None:
    """Raise ``TreeError`` on duplicate ids, broken sums or a non-finite total."""
    seen: set[str] = set()
    for node in iter_nodes(tree):
        if node.id in seen:
            raise TreeError(f"Duplicate node id: '{node.id}'")
        seen.add(node.id)
    try:
        broken = check_invariant(tree)
    except ValueError as exc:
        raise TreeError(f"Subtree sum is not finite: {exc}") from exc
    if broken:
        raise TreeError(f"Nodes not equal to the sum of their children: {broken}")
    _require_finite_total(tree)


def _require_finite_total(tree: Tree) -> None:
    try:
        grand_total(tree)
    except ValueError as exc:
        raise TreeError(f"Grand total is not finite: {exc}") from exc


# ── Construction / serialisation ────────────────────────────────────────────

def _row_value(row: Mapping[str, Any], node_id: str) -> float:
    raw = row.get("value")
    if raw is None or isinstance(raw, bool):
        raise TreeError(f"Leaf '{node_id}' has no numeric value")
    try:
        return round2(float(raw))
    except (TypeError, ValueError) as exc:
        raise TreeError(f"Leaf '{node_id}' has invalid value {raw!r}") from exc


def _make_node(row: Mapping[str, Any], node_id: str, children: list[Node]) -> Node:
    label = str(row.get("label") or node_id)
    if not children:
        return Node(id=node_id, label=label, value=_row_value(row, node_id))

    try:
        value = round2(sum(child.value for child in children))
    except ValueError as exc:
        raise TreeError(f"Children of '{node_id}' sum to a non-finite value") from exc
    declared = row.get("value")
    if declared is not None and declared != value:
        _log.debug("Node '%s': declared value %s replaced by children sum %s", node_id, declared, value)
    return Node(id=node_id, label=label, value=value, children=tuple(children))


def build_tree(rows: Iterable[Mapping[str, Any]]) -> Tree:
    """Build a tree from nested ``{"id", "label", "value", "children"}`` rows.

    Leaf values are rounded; internal values are always derived from their
    children, whatever the row declares. Raises ``TreeError`` on duplicate
    or missing ids, on leaves without a numeric value and on sums that
    overflow to a non-finite value.
    """
    seen: set[str] = set()
    roots: list[Node] = []
    stack: list[tuple[Mapping[str, Any], str, Iterator[Mapping[str, Any]], list[Node], list[Node]]] = []

    def push(row: Mapping[str, Any], sink: list[Node]) -> None:
        raw_id = row.get("id")
        if raw_id is None or str(raw_id).strip() == "":
            raise TreeError(f"Row without id: {dict(row)!r}")
        node_id = str(raw_id)
        if node_id in seen:
            raise TreeError(f"Duplicate node id: '{node_id}'")
        seen.add(node_id)
        stack.append((row, node_id, iter(row.get("children") or ()), [], sink))

    for root in rows:
        push(root, roots)
        while stack:
            row, node_id, pending, built, sink = stack[-1]
            child = next(pending, None)
            if child is not None:
                push(child, built)
                continue
            stack.pop()
            sink.append(_make_node(row, node_id, built))

    tree = tuple(roots)
    _require_finite_total(tree)
    return tree


def tree_to_dicts(tree: Tree) -> list[dict[str, Any]]:
    """Inverse of ``build_tree``: nested plain dicts, leaves without a
    ``children`` key."""
    out: list[dict[str, Any]] = []
    stack: list[tuple[Node, list[dict[str, Any]]]] = [(root, out) for root in reversed(tree)]
    while stack:
        node, sink = stack.pop()
        entry: dict[str, Any] = {"id": node.id, "label": node.label, "value": node.value}
        sink.append(entry)
        if node.children:
            entry["children"] = []
            stack.extend((child, entry["children"]) for child in reversed(node.children))
    return out
