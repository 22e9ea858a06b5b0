"""
Redistribution policies for the degenerate zero-sum case.

When an internal node is edited, its new value is spread over its immediate
children in proportion to their current values. If those children sum to 0
there is no proportion to follow, so one of these policies decides instead.
"""

from __future__ import annotations

from enum import Enum


class ZeroSumPolicy(str, Enum):
    EVEN = "even"                # equal shares, last child absorbs the rounding residue
    FIRST_CHILD = "first_child"  # whole value to the first child, others 0
    SKIP = "skip"                # children untouched; aggregation restores the parent

    @classmethod
    def parse(cls, value: "ZeroSumPolicy | str") -> "ZeroSumPolicy":
        """Resolve *value* to a policy.

        Raises ``ValueError`` with the list of valid names on unknown input.
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "_")
        for policy in cls:
            if policy.value == key:
                return policy
        raise ValueError(
            f"Unknown zero-sum policy: '{value}'. "
            f"Available: {sorted(p.value for p in cls)}"
        )
