"""Condition and expression abstract syntax for strategy nodes."""

from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import Discriminator, Field, Tag

from strategy_lab.backend.core.base_models import WireModel

InstrumentType = Literal["TI", "SI"]
MathOperator = Literal["+", "-", "*", "/", "%", "+%", "-%"]
TimeOperator = Literal["==", "!=", ">", ">=", "<", "<="]
PnlType = Literal["realized", "unrealized", "total"]
PnlScope = Literal["position", "overall"]
ComparisonOperator = Literal[
    ">",
    "<",
    ">=",
    "<=",
    "==",
    "!=",
    "crosses_above",
    "crosses_below",
    "between",
    "not_between",
    "in",
    "not_in",
]
GroupLogic = Literal["AND", "OR"]


class ConstantExpression(WireModel):
    type: Literal["constant"] = "constant"
    value_type: Literal["number", "string", "boolean", "status"] = "number"
    number_value: Optional[float] = None
    string_value: Optional[str] = None
    boolean_value: Optional[bool] = None
    status_value: Optional[Literal["Open", "Close", "Partially closed"]] = None
    value: Any = None


class IndicatorExpression(WireModel):
    type: Literal["indicator"] = "indicator"
    indicator_id: str = ""
    indicator_param: str = ""
    indicator_field_type: str = "value"
    indicator_param_type: str = "input"
    instrument_type: Optional[InstrumentType] = None
    timeframe_id: Optional[str] = None
    timeframe: Optional[str] = None
    name: Optional[str] = None
    parameter: Optional[str] = None
    offset: Optional[int] = None


class CandleDataExpression(WireModel):
    type: Literal["candle_data"] = "candle_data"
    data_field: str = ""
    instrument_type: Optional[InstrumentType] = None
    timeframe_id: Optional[str] = None
    timeframe: Optional[str] = None
    field: Optional[str] = None
    offset: Optional[int] = None


class LiveDataExpression(WireModel):
    type: Literal["live_data"] = "live_data"
    data_field: str = "ltp"
    field: Optional[str] = None
    instrument_type: Optional[InstrumentType] = None
    vpi: Optional[str] = None


class TimeFunctionExpression(WireModel):
    type: Literal["time_function"] = "time_function"
    time_value: str = "09:00"
    operator: Optional[TimeOperator] = None


class CurrentTimeExpression(WireModel):
    type: Literal["current_time"] = "current_time"


class ComplexExpression(WireModel):
    """Binary composition `left <operation> right`."""

    type: Literal["expression"] = "expression"
    expression_string: str = ""
    operation: Optional[MathOperator] = None
    left: Optional[Expression] = None
    right: Optional[Expression] = None


class FunctionExpression(WireModel):
    type: Literal["function"] = "function"
    function_name: Literal["max", "min"] = "max"
    expressions: List[Expression] = Field(default_factory=list)


class PositionDataExpression(WireModel):
    type: Literal["position_data"] = "position_data"
    vpi: Optional[str] = None
    position_field: str = "entryPrice"
    field: Optional[str] = None


class TrailingVariableExpression(WireModel):
    type: Literal["trailing_variable"] = "trailing_variable"
    variable_id: Optional[str] = None
    trailing_field: Literal["trailingPosition"] = "trailingPosition"


class ExternalTriggerExpression(WireModel):
    type: Literal["external_trigger"] = "external_trigger"
    trigger_id: str = ""
    trigger_type: Optional[str] = None
    parameters: dict[str, Any] = Field(default_factory=dict)


class NodeVariableExpression(WireModel):
    type: Literal["node_variable"] = "node_variable"
    node_id: str = ""
    variable_name: str = ""


class GlobalVariableExpression(WireModel):
    type: Literal["global_variable"] = "global_variable"
    global_variable_id: str = ""
    global_variable_name: str = ""


class PnLExpression(WireModel):
    type: Literal["pnl_data"] = "pnl_data"
    pnl_type: PnlType = "unrealized"
    scope: PnlScope = "overall"
    vpi: Optional[str] = None


class UnderlyingPnLExpression(WireModel):
    type: Literal["underlying_pnl"] = "underlying_pnl"
    pnl_type: PnlType = "unrealized"
    scope: PnlScope = "overall"
    vpi: Optional[str] = None


class MathExpressionItem(WireModel):
    """One operand of a flat math expression; the operator precedes the operand."""

    expression: Expression
    operator: Optional[MathOperator] = None


class MathExpression(WireModel):
    type: Literal["math_expression"] = "math_expression"
    items: List[MathExpressionItem] = Field(default_factory=list)


class PositionTimeExpression(WireModel):
    type: Literal["position_time"] = "position_time"
    time_field: Literal["entryTime", "exitTime"] = "entryTime"
    vpi: Optional[str] = None


class TimeOffsetExpression(WireModel):
    type: Literal["time_offset"] = "time_offset"
    base_time: Expression = Field(default_factory=CurrentTimeExpression)
    offset_type: Literal["days", "hours", "minutes", "seconds", "candles"] = "minutes"
    offset_value: float = 0
    direction: Literal["before", "after"] = "after"


class CandleRangeExpression(WireModel):
    type: Literal["candle_range"] = "candle_range"
    range_type: Literal["by_count", "by_time", "relative"] = "by_count"
    start_index: Optional[int] = None
    end_index: Optional[int] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    reference_type: Optional[Literal["time", "candle_number", "position_entry", "position_exit", "current_candle"]] = None
    reference_time: Optional[str] = None
    reference_candle_number: Optional[int] = None
    reference_vpi: Optional[str] = None
    candle_count: Optional[int] = None
    direction: Optional[Literal["before", "after"]] = None
    instrument_type: Optional[InstrumentType] = None
    timeframe_id: Optional[str] = None


class AggregationExpression(WireModel):
    type: Literal["aggregation"] = "aggregation"
    aggregation_type: Literal["min", "max", "avg", "sum", "first", "last", "count"] = "max"
    source_type: Literal["candle_range", "expression_list"] = "expression_list"
    candle_range: Optional[CandleRangeExpression] = None
    expressions: Optional[List[Expression]] = None
    ohlcv_field: Optional[Literal["open", "high", "low", "close", "volume"]] = None


class ListExpression(WireModel):
    type: Literal["list"] = "list"
    items: List[Expression] = Field(default_factory=list)


Expression = Annotated[
    Union[
        ConstantExpression,
        IndicatorExpression,
        CandleDataExpression,
        LiveDataExpression,
        TimeFunctionExpression,
        CurrentTimeExpression,
        ComplexExpression,
        FunctionExpression,
        PositionDataExpression,
        TrailingVariableExpression,
        ExternalTriggerExpression,
        NodeVariableExpression,
        GlobalVariableExpression,
        PnLExpression,
        UnderlyingPnLExpression,
        MathExpression,
        PositionTimeExpression,
        TimeOffsetExpression,
        CandleRangeExpression,
        AggregationExpression,
        ListExpression,
    ],
    Field(discriminator="type"),
]

EXPRESSION_KINDS: tuple[str, ...] = (
    "constant",
    "indicator",
    "candle_data",
    "live_data",
    "time_function",
    "current_time",
    "expression",
    "function",
    "position_data",
    "trailing_variable",
    "external_trigger",
    "node_variable",
    "global_variable",
    "pnl_data",
    "underlying_pnl",
    "math_expression",
    "position_time",
    "time_offset",
    "candle_range",
    "aggregation",
    "list",
)


class Condition(WireModel):
    """Leaf comparison; `rhs_upper` is only used by the range operators."""

    id: str
    operator: ComparisonOperator = ">"
    lhs: Optional[Expression] = None
    rhs: Optional[Expression] = None
    rhs_upper: Optional[Expression] = None


def _condition_kind(value: Any) -> str:
    if isinstance(value, dict):
        return "group" if ("groupLogic" in value or "group_logic" in value or "conditions" in value) else "leaf"
    return "group" if isinstance(value, GroupCondition) else "leaf"


class GroupCondition(WireModel):
    id: str
    group_logic: GroupLogic = "AND"
    conditions: List[ConditionItem] = Field(default_factory=list)


ConditionItem = Annotated[
    Union[Annotated[GroupCondition, Tag("group")], Annotated[Condition, Tag("leaf")]],
    Discriminator(_condition_kind),
]

for _model in (
    ComplexExpression,
    FunctionExpression,
    MathExpressionItem,
    MathExpression,
    TimeOffsetExpression,
    AggregationExpression,
    ListExpression,
    Condition,
    GroupCondition,
):
    _model.model_rebuild()


__all__ = [
    "ConstantExpression",
    "IndicatorExpression",
    "CandleDataExpression",
    "LiveDataExpression",
    "TimeFunctionExpression",
    "CurrentTimeExpression",
    "ComplexExpression",
    "FunctionExpression",
    "PositionDataExpression",
    "TrailingVariableExpression",
    "ExternalTriggerExpression",
    "NodeVariableExpression",
    "GlobalVariableExpression",
    "PnLExpression",
    "UnderlyingPnLExpression",
    "MathExpressionItem",
    "MathExpression",
    "PositionTimeExpression",
    "TimeOffsetExpression",
    "CandleRangeExpression",
    "AggregationExpression",
    "ListExpression",
    "Expression",
    "EXPRESSION_KINDS",
    "Condition",
    "GroupCondition",
    "ConditionItem",
    "ComparisonOperator",
    "GroupLogic",
    "MathOperator",
]
