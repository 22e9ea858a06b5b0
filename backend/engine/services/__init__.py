from .propagation import (
    EditKind,
    aggregate,
    apply,
    apply_edit,
    compute_target_value,
    redistribute,
)

__all__ = [
    "EditKind",
    "aggregate",
    "apply",
    "apply_edit",
    "compute_target_value",
    "redistribute",
]
