from .frame import (
    FRAME_COLUMNS,
    read_tree_table,
    tree_from_frame,
    tree_to_frame,
)

__all__ = [
    "FRAME_COLUMNS",
    "read_tree_table",
    "tree_from_frame",
    "tree_to_frame",
]
