"""Factories producing minimal valid expressions and conditions."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Sequence

from strategy_lab.backend.core.conditions.models import (
    AggregationExpression,
    CandleDataExpression,
    CandleRangeExpression,
    ComparisonOperator,
    ComplexExpression,
    Condition,
    ConditionItem,
    ConstantExpression,
    CurrentTimeExpression,
    Expression,
    ExternalTriggerExpression,
    FunctionExpression,
    GlobalVariableExpression,
    GroupCondition,
    GroupLogic,
    IndicatorExpression,
    ListExpression,
    LiveDataExpression,
    MathExpression,
    MathExpressionItem,
    MathOperator,
    NodeVariableExpression,
    PnLExpression,
    PositionDataExpression,
    PositionTimeExpression,
    TimeFunctionExpression,
    TimeOffsetExpression,
    TrailingVariableExpression,
    UnderlyingPnLExpression,
)

logger = logging.getLogger(__name__)


def new_condition_id(prefix: str = "condition") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def create_constant_expression(value_type: str = "number", value: Any = 0) -> ConstantExpression:
    expr = ConstantExpression(value_type=value_type, value=value)
    if value_type == "number":
        expr.number_value = value if isinstance(value, (int, float)) and not isinstance(value, bool) else 0
    elif value_type == "string":
        expr.string_value = value if isinstance(value, str) else ""
    elif value_type == "boolean":
        expr.boolean_value = value if isinstance(value, bool) else False
    return expr


def create_complex_expression(
    operation: Optional[MathOperator] = None,
    left: Optional[Expression] = None,
    right: Optional[Expression] = None,
) -> ComplexExpression:
    return ComplexExpression(
        operation=operation,
        left=left or create_constant_expression(),
        right=right or create_constant_expression(),
    )


def create_function_expression(function_name: str = "max", expressions: Sequence[Expression] = ()) -> FunctionExpression:
    operands = list(expressions) or [create_constant_expression(), create_constant_expression()]
    return FunctionExpression(function_name=function_name, expressions=operands)


def create_math_expression(items: Optional[List[MathExpressionItem]] = None) -> MathExpression:
    return MathExpression(items=items or [MathExpressionItem(expression=create_constant_expression())])


def add_math_item(math_expr: MathExpression, operator: MathOperator = "+", expression: Optional[Expression] = None) -> MathExpression:
    """Return a copy of `math_expr` with one more operand appended."""

    items = [item.model_copy(deep=True) for item in math_expr.items]
    items.append(MathExpressionItem(operator=operator, expression=expression or create_constant_expression()))
    return math_expr.model_copy(update={"items": items})


def remove_math_item(math_expr: MathExpression, index: int) -> MathExpression:
    """Return a copy without the operand at `index`; the first operand never carries an operator."""

    items = [item.model_copy(deep=True) for item in math_expr.items]
    if 0 <= index < len(items):
        items.pop(index)
    if items:
        items[0].operator = None
    else:
        items = [MathExpressionItem(expression=create_constant_expression())]
    return math_expr.model_copy(update={"items": items})


EXPRESSION_FACTORIES: Dict[str, Callable[[], Expression]] = {
    "constant": create_constant_expression,
    "indicator": lambda: IndicatorExpression(name="", parameter="", offset=0),
    "candle_data": CandleDataExpression,
    "live_data": lambda: LiveDataExpression(data_field="ltp", field="ltp", instrument_type="TI"),
    "time_function": lambda: TimeFunctionExpression(time_value="09:00", operator=">="),
    "current_time": CurrentTimeExpression,
    "expression": create_complex_expression,
    "function": create_function_expression,
    "position_data": lambda: PositionDataExpression(position_field="entryPrice", field="entryPrice"),
    "trailing_variable": TrailingVariableExpression,
    "external_trigger": ExternalTriggerExpression,
    "node_variable": NodeVariableExpression,
    "global_variable": GlobalVariableExpression,
    "pnl_data": PnLExpression,
    "underlying_pnl": UnderlyingPnLExpression,
    "math_expression": create_math_expression,
    "position_time": PositionTimeExpression,
    "time_offset": TimeOffsetExpression,
    "candle_range": lambda: CandleRangeExpression(start_index=0, end_index=5, instrument_type="TI"),
    "aggregation": lambda: AggregationExpression(expressions=[create_constant_expression()]),
    "list": lambda: ListExpression(items=[create_constant_expression()]),
}


def create_default_expression(kind: str) -> Expression:
    """Return a minimal valid expression for `kind`; unknown kinds fall back to the constant 0."""

    factory = EXPRESSION_FACTORIES.get(kind)
    if factory is None:
        logger.warning("Unknown expression kind, defaulting to constant | kind=%s", kind)
        return create_constant_expression()
    return factory()


def create_condition(
    operator: ComparisonOperator = ">",
    lhs: Optional[Expression] = None,
    rhs: Optional[Expression] = None,
    rhs_upper: Optional[Expression] = None,
) -> Condition:
    return Condition(
        id=new_condition_id(),
        operator=operator,
        lhs=lhs or create_constant_expression(),
        rhs=rhs or create_constant_expression(),
        rhs_upper=rhs_upper,
    )


def create_group_condition(group_logic: GroupLogic = "AND", conditions: Optional[List[ConditionItem]] = None) -> GroupCondition:
    return GroupCondition(id=new_condition_id("group"), group_logic=group_logic, conditions=list(conditions or []))


def create_default_condition() -> Condition:
    return create_condition(">", create_constant_expression(), create_constant_expression())


def create_default_group_condition() -> GroupCondition:
    return create_group_condition("AND", [create_default_condition()])


def create_root_group() -> GroupCondition:
    """Empty root group stored on freshly created signal nodes."""

    return GroupCondition(id="root", group_logic="AND", conditions=[])


__all__ = [
    "new_condition_id",
    "create_constant_expression",
    "create_complex_expression",
    "create_function_expression",
    "create_math_expression",
    "add_math_item",
    "remove_math_item",
    "EXPRESSION_FACTORIES",
    "create_default_expression",
    "create_condition",
    "create_group_condition",
    "create_default_condition",
    "create_default_group_condition",
    "create_root_group",
]
