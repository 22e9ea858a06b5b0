"""
Propagation Engine: applies one edit to a tree and returns a consistent tree.

An edit targets a single node and is either relative (a percentage delta on
the current value) or absolute (the new value itself). Three passes:

    1. locate        find the target, compute its new value (rounded)
    2. redistribute  scale the target's IMMEDIATE children by new/old total
    3. aggregate     whole-forest post-order: parent = sum(children)

Grandchildren are not rescaled in step 2. An internal child whose value was
scaled is therefore reset to its own children's sum by step 3.

Invalid raw values and unknown ids leave the tree as it was: the very same
object is returned and nothing is raised.

Examples:
    tree = apply_edit(tree, "phones", "relative", "10")    # 800 -> 880
    tree = apply_edit(tree, "electronics", "absolute", "3000")
    apply_edit(tree, "phones", "absolute", "abc") is tree  # True
"""

from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum
from typing import Iterator

from engine.config import DEFAULT_ZERO_SUM_POLICY, ZeroSumPolicy
from engine.core.rounding import parse_raw_value, round2
from engine.core.tree import Node, Tree, find_path, grand_total, node_at

_log = logging.getLogger(__name__)


class EditKind(str, Enum):
    RELATIVE = "relative"
    ABSOLUTE = "absolute"

    @classmethod
    def parse(cls, value: "EditKind | str") -> "EditKind":
        """Resolve *value*, accepting ``percentage``/``direct`` as aliases."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        kind = _EDIT_KIND_ALIASES.get(key)
        if kind is None:
            raise ValueError(
                f"Unknown edit kind: '{value}'. "
                f"Available: {sorted(_EDIT_KIND_ALIASES)}"
            )
        return kind


_EDIT_KIND_ALIASES: dict[str, EditKind] = {
    "relative": EditKind.RELATIVE,
    "percentage": EditKind.RELATIVE,
    "percent": EditKind.RELATIVE,
    "absolute": EditKind.ABSOLUTE,
    "direct": EditKind.ABSOLUTE,
}


# ── Pass 1: target value ────────────────────────────────────────────────────

def compute_target_value(current: float, kind: EditKind, amount: float) -> float:
    if kind is EditKind.RELATIVE:
        return round2(current + current * (amount / 100))
    return round2(amount)


# ── Pass 2: downward redistribution ────────────────────────────────────────

def _zero_sum_children(
    children: tuple[Node, ...], new_value: float, policy: ZeroSumPolicy,
) -> tuple[Node, ...]:
    if policy is ZeroSumPolicy.SKIP:
        return children

    n = len(children)
    if policy is ZeroSumPolicy.FIRST_CHILD:
        values = [new_value] + [0.0] * (n - 1)
    else:
        share = round2(new_value / n)
        values = [share] * (n - 1) + [round2(new_value - share * (n - 1))]

    return tuple(replace(child, value=v) for child, v in zip(children, values))


def redistribute(
    node: Node,
    new_value: float,
    zero_sum_policy: ZeroSumPolicy = DEFAULT_ZERO_SUM_POLICY,
) -> Node:
    """Give *node* its new value and scale its immediate children to match.

    The ratio ``new_value / sum(children)`` is not rounded; each scaled
    child value is. A leaf just takes *new_value*.
    """
    if node.is_leaf:
        return replace(node, value=new_value)

    total = sum(child.value for child in node.children)
    if round2(total) == 0:
        _log.debug(
            "Children of '%s' sum to 0; redistributing with policy %s",
            node.id, zero_sum_policy.value,
        )
        children = _zero_sum_children(node.children, new_value, zero_sum_policy)
    else:
        ratio = new_value / total
        children = tuple(
            replace(child, value=round2(child.value * ratio)) for child in node.children
        )
    return replace(node, value=new_value, children=children)


# ── Pass 3: upward aggregation ─────────────────────────────────────────────

def _rebuild(node: Node, children: list[Node]) -> Node:
    if not children:
        return node
    value = round2(sum(child.value for child in children))
    if value == node.value and all(a is b for a, b in zip(children, node.children)):
        return node
    return replace(node, value=value, children=tuple(children))


def aggregate(tree: Tree) -> Tree:
    """Recompute every internal node as the rounded sum of its children.

    Subtrees whose values do not change are returned as the same objects;
    an already consistent tree comes back as the input tuple itself.
    """
    roots: list[Node] = []
    for root in tree:
        stack: list[tuple[Node, Iterator[Node], list[Node], list[Node]]] = [
            (root, iter(root.children), [], roots)
        ]
        while stack:
            node, pending, built, sink = stack[-1]
            child = next(pending, None)
            if child is not None:
                if child.children:
                    stack.append((child, iter(child.children), [], built))
                else:
                    built.append(child)
                continue
            stack.pop()
            sink.append(_rebuild(node, built))

    if all(a is b for a, b in zip(roots, tree)):
        return tree
    return tuple(roots)


# ── Composition ────────────────────────────────────────────────────────────

def _replace_at(tree: Tree, path: tuple[int, ...], replacement: Node) -> Tree:
    """Copy the spine from the roots down to *path*, swapping in *replacement*."""
    levels: list[tuple[tuple[Node, ...], int]] = []
    siblings: tuple[Node, ...] = tree
    for index in path:
        levels.append((siblings, index))
        siblings = siblings[index].children

    current = replacement
    for depth in range(len(levels) - 1, 0, -1):
        siblings, index = levels[depth]
        parent_siblings, parent_index = levels[depth - 1]
        new_children = siblings[:index] + (current,) + siblings[index + 1:]
        current = replace(parent_siblings[parent_index], children=new_children)

    roots, index = levels[0]
    return roots[:index] + (current,) + roots[index + 1:]


def apply_edit(
    tree: Tree,
    target_id: str,
    kind: EditKind | str,
    raw_value: object,
    *,
    zero_sum_policy: ZeroSumPolicy | str = DEFAULT_ZERO_SUM_POLICY,
) -> Tree:
    """Apply one edit and return the new, fully aggregated tree.

    Returns *tree* itself when *raw_value* is blank, non-numeric or
    non-finite, when *target_id* matches no node, or when the result would
    not be a finite number. Raises ``ValueError`` only for an unknown
    *kind* or *zero_sum_policy*.
    """
    kind = EditKind.parse(kind)
    policy = ZeroSumPolicy.parse(zero_sum_policy)

    amount = parse_raw_value(raw_value)
    if amount is None:
        _log.debug("Ignoring %s edit on '%s': invalid input %r", kind.value, target_id, raw_value)
        return tree

    path = find_path(tree, target_id)
    if path is None:
        _log.debug("Ignoring %s edit: no node with id '%s'", kind.value, target_id)
        return tree

    target = node_at(tree, path)
    try:
        new_value = compute_target_value(target.value, kind, amount)
        updated = redistribute(target, new_value, policy)
        result = aggregate(_replace_at(tree, path, updated))
        grand_total(result)  # forest total must stay finite too
    except ValueError:
        # round2 rejects inf/nan produced by overflowing inputs
        _log.warning(
            "Ignoring %s edit on '%s' with %r: result is not finite",
            kind.value, target_id, raw_value,
        )
        return tree

    _log.debug(
        "Applied %s edit on '%s': %s -> %s", kind.value, target_id, target.value, new_value,
    )
    return result


# Short name matching the in-process call surface: apply(tree, id, kind, raw).
apply = apply_edit
