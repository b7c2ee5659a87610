"""Condition and expression AST: models, factories and rendering."""

from strategy_lab.backend.core.conditions.models import (
    EXPRESSION_KINDS,
    Condition,
    ConditionItem,
    ConstantExpression,
    Expression,
    GroupCondition,
    MathExpression,
    MathExpressionItem,
)
from strategy_lab.backend.core.conditions.factories import (
    add_math_item,
    create_condition,
    create_default_condition,
    create_default_expression,
    create_default_group_condition,
    create_group_condition,
    create_root_group,
    remove_math_item,
)
from strategy_lab.backend.core.conditions.rendering import (
    RenderContext,
    condition_to_string,
    conditions_preview,
    expression_to_string,
    group_condition_to_string,
)

__all__ = [
    "EXPRESSION_KINDS",
    "Condition",
    "ConditionItem",
    "ConstantExpression",
    "Expression",
    "GroupCondition",
    "MathExpression",
    "MathExpressionItem",
    "add_math_item",
    "create_condition",
    "create_default_condition",
    "create_default_expression",
    "create_default_group_condition",
    "create_group_condition",
    "create_root_group",
    "remove_math_item",
    "RenderContext",
    "condition_to_string",
    "conditions_preview",
    "expression_to_string",
    "group_condition_to_string",
]
