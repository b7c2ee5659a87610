"""Variable scoping: snapshot, trailing and global-variable assignments."""

from strategy_lab.backend.core.variables.global_assignments import (
    AssignmentClipboard,
    add_assignment,
    available_global_variables,
    remove_assignment,
    update_assignment_expression,
)
from strategy_lab.backend.core.variables.snapshot import (
    add_snapshot_variable,
    remove_snapshot_variable,
    rename_snapshot_variable,
    update_snapshot_expression,
)
from strategy_lab.backend.core.variables.trailing import derive_trailing_variables, set_trailing_enabled

__all__ = [
    "AssignmentClipboard",
    "add_assignment",
    "available_global_variables",
    "remove_assignment",
    "update_assignment_expression",
    "add_snapshot_variable",
    "remove_snapshot_variable",
    "rename_snapshot_variable",
    "update_snapshot_expression",
    "derive_trailing_variables",
    "set_trailing_enabled",
]
