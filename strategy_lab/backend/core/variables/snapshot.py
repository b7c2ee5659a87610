"""Per-node snapshot variables: user-named expressions captured when the node runs."""

from __future__ import annotations

import re
import uuid
from typing import List, Optional, Sequence, Tuple

from strategy_lab.backend.core.conditions.factories import create_default_expression
from strategy_lab.backend.core.conditions.models import Expression
from strategy_lab.backend.core.errors import ConflictError, ValidationError
from strategy_lab.backend.core.graph.models import NodeVariable

_DEFAULT_NAME = re.compile(r"^variable(\d+)$")


def next_variable_name(variables: Sequence[NodeVariable]) -> str:
    highest = 0
    for variable in variables:
        match = _DEFAULT_NAME.match(variable.name)
        if match:
            highest = max(highest, int(match.group(1)))
    return f"variable{max(highest, len(variables)) + 1}"


def _check_name(variables: Sequence[NodeVariable], name: str, ignore_id: Optional[str] = None) -> str:
    cleaned = name.strip()
    if not cleaned:
        raise ValidationError("Variable name cannot be empty.")
    for variable in variables:
        if variable.id != ignore_id and variable.name == cleaned:
            raise ConflictError(f"A variable named '{cleaned}' already exists on this node.")
    return cleaned


def add_snapshot_variable(
    variables: Sequence[NodeVariable],
    node_id: str,
    name: Optional[str] = None,
    expression: Optional[Expression] = None,
) -> Tuple[List[NodeVariable], NodeVariable]:
    """Append a new variable; the default expression is the constant 0."""

    name = _check_name(variables, name if name is not None else next_variable_name(variables))
    variable = NodeVariable(
        id=str(uuid.uuid4()),
        name=name,
        expression=expression or create_default_expression("constant"),
        node_id=node_id,
    )
    return [*variables, variable], variable


def rename_snapshot_variable(variables: Sequence[NodeVariable], variable_id: str, name: str) -> List[NodeVariable]:
    name = _check_name(variables, name, ignore_id=variable_id)
    return [v.model_copy(update={"name": name}) if v.id == variable_id else v for v in variables]


def update_snapshot_expression(
    variables: Sequence[NodeVariable], variable_id: str, expression: Expression
) -> List[NodeVariable]:
    return [v.model_copy(update={"expression": expression}) if v.id == variable_id else v for v in variables]


def remove_snapshot_variable(variables: Sequence[NodeVariable], variable_id: str) -> List[NodeVariable]:
    return [v for v in variables if v.id != variable_id]


__all__ = [
    "next_variable_name",
    "add_snapshot_variable",
    "rename_snapshot_variable",
    "update_snapshot_expression",
    "remove_snapshot_variable",
]
