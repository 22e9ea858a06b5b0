"""Core domain objects: tree nodes, derived values, rounding."""

from engine.core.rounding import parse_raw_value, round2
from engine.core.tree import (
    Node,
    Tree,
    TreeError,
    build_baseline,
    build_tree,
    check_invariant,
    find_node,
    find_path,
    flatten,
    format_variance,
    grand_total,
    iter_nodes,
    leaves,
    node_at,
    tree_to_dicts,
    validate_tree,
    variance,
)

__all__ = [
    "Node",
    "Tree",
    "TreeError",
    "build_baseline",
    "build_tree",
    "check_invariant",
    "find_node",
    "find_path",
    "flatten",
    "format_variance",
    "grand_total",
    "iter_nodes",
    "leaves",
    "node_at",
    "parse_raw_value",
    "round2",
    "tree_to_dicts",
    "validate_tree",
    "variance",
]
