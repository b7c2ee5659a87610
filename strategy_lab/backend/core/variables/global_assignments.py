"""Global-variable assignments attached to action nodes, and their clipboard."""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional, Sequence, Tuple

from strategy_lab.backend.core.conditions.factories import create_default_expression
from strategy_lab.backend.core.conditions.models import Expression
from strategy_lab.backend.core.errors import ConflictError, ValidationError
from strategy_lab.backend.core.graph.models import GlobalVariable, GlobalVariableUpdate

logger = logging.getLogger(__name__)


def new_assignment_id() -> str:
    return f"gva-{uuid.uuid4().hex[:12]}"


def available_global_variables(
    global_variables: Sequence[GlobalVariable], assignments: Sequence[GlobalVariableUpdate]
) -> List[GlobalVariable]:
    """Global variables that this node does not assign yet."""

    assigned = {assignment.global_variable_id for assignment in assignments}
    return [variable for variable in global_variables if variable.id not in assigned]


def add_assignment(
    assignments: Sequence[GlobalVariableUpdate],
    global_variables: Sequence[GlobalVariable],
    global_variable_id: str,
    expression: Optional[Expression] = None,
) -> Tuple[List[GlobalVariableUpdate], GlobalVariableUpdate]:
    target = next((variable for variable in global_variables if variable.id == global_variable_id), None)
    if target is None:
        raise ValidationError(f"Unknown global variable '{global_variable_id}'.")
    if any(assignment.global_variable_id == global_variable_id for assignment in assignments):
        raise ConflictError(f"Global variable '{target.name}' is already assigned on this node.")
    assignment = GlobalVariableUpdate(
        id=new_assignment_id(),
        global_variable_id=target.id,
        global_variable_name=target.name,
        expression=expression or create_default_expression("constant"),
    )
    return [*assignments, assignment], assignment


def update_assignment_expression(
    assignments: Sequence[GlobalVariableUpdate], assignment_id: str, expression: Expression
) -> List[GlobalVariableUpdate]:
    return [a.model_copy(update={"expression": expression}) if a.id == assignment_id else a for a in assignments]


def remove_assignment(assignments: Sequence[GlobalVariableUpdate], assignment_id: str) -> List[GlobalVariableUpdate]:
    return [assignment for assignment in assignments if assignment.id != assignment_id]


class AssignmentClipboard:
    """
    Holds one copied list of assignments; the last copy wins.

    Instances are passed to whoever needs them, so isolated clipboards are
    trivial to create.
    """

    def __init__(self) -> None:
        self._items: List[GlobalVariableUpdate] = []

    @property
    def has_content(self) -> bool:
        return bool(self._items)

    @property
    def items(self) -> List[GlobalVariableUpdate]:
        return [item.model_copy(deep=True) for item in self._items]

    def copy(self, assignments: Sequence[GlobalVariableUpdate]) -> int:
        self._items = [assignment.model_copy(deep=True) for assignment in assignments]
        return len(self._items)

    def clear(self) -> None:
        self._items = []

    def paste(
        self,
        target_assignments: Sequence[GlobalVariableUpdate],
        global_variables: Sequence[GlobalVariable],
    ) -> Tuple[List[GlobalVariableUpdate], int]:
        """
        Merge the clipboard into `target_assignments`.

        Each item is resolved against `global_variables` by id, then by name.
        Items whose variable is missing or already assigned are skipped, so
        pasting the same content twice changes nothing the second time.
        """

        result = list(target_assignments)
        assigned = {assignment.global_variable_id for assignment in result}
        by_id = {variable.id: variable for variable in global_variables}
        by_name = {variable.name: variable for variable in global_variables}
        pasted = 0
        for item in self._items:
            target = by_id.get(item.global_variable_id) or by_name.get(item.global_variable_name)
            if target is None:
                logger.info("Skipping pasted assignment without target | name=%s", item.global_variable_name)
                continue
            if target.id in assigned:
                continue
            result.append(
                GlobalVariableUpdate(
                    id=new_assignment_id(),
                    global_variable_id=target.id,
                    global_variable_name=target.name,
                    expression=item.expression.model_copy(deep=True),
                )
            )
            assigned.add(target.id)
            pasted += 1
        return result, pasted


__all__ = [
    "new_assignment_id",
    "available_global_variables",
    "add_assignment",
    "update_assignment_expression",
    "remove_assignment",
    "AssignmentClipboard",
]
