"""
Human-readable rendering of condition trees and expressions.

Every function here is pure and total: malformed input renders as a sentinel
string containing ``Incomplete`` or ``Error`` instead of raising, so a single
bad leaf never blanks a whole preview. Both pydantic models and raw wire
dictionaries are accepted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from strategy_lab.backend.core.conditions.models import EXPRESSION_KINDS, Expression
from strategy_lab.backend.core.conditions.naming import (
    format_display_name,
    format_node_variable_reference,
    normalize_identifier,
    sanitize_name,
    timeframe_display,
)

logger = logging.getLogger(__name__)

INCOMPLETE_CONDITION = "Incomplete condition"
ERROR_CONDITION = "Error formatting condition"
ERROR_EXPRESSION = "Error"
UNKNOWN_EXPRESSION = "Unknown Expression"

RANGE_OPERATORS = ("between", "not_between")

POSITION_FIELD_NAMES: Dict[str, str] = {
    "entryPrice": "Entry Price",
    "currentPrice": "Current Price",
    "quantity": "Quantity",
    "status": "Status",
    "underlyingPriceOnEntry": "Underlying Price on Entry",
    "underlyingPriceOnExit": "Underlying Price on Exit",
    "instrumentName": "Instrument Name",
    "instrumentType": "Instrument Type",
    "symbol": "Symbol",
    "expiryDate": "Expiry Date",
    "strikePrice": "Strike Price",
    "optionType": "Option Type",
    "strikeType": "Strike Type",
    "underlyingName": "Underlying Name",
}

PNL_LABELS = {"realized": "Realized", "unrealized": "Unrealized"}

_EXPRESSION_ADAPTER: TypeAdapter[Any] = TypeAdapter(Expression)


@dataclass
class TimeframeInfo:
    id: str
    timeframe: str
    indicators: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class RenderContext:
    """
    Metadata needed to render references meaningfully.

    Built from the ``start`` node's instrument configuration; trading
    instrument timeframes are searched before supporting ones.
    """

    timeframes: List[TimeframeInfo] = field(default_factory=list)
    variable_names: Dict[str, str] = field(default_factory=dict)
    global_variable_names: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_start_data(cls, data: Any) -> "RenderContext":
        raw = _as_mapping(data)
        timeframes: List[TimeframeInfo] = []
        for config_key in ("tradingInstrumentConfig", "supportingInstrumentConfig"):
            config = _as_mapping(raw.get(config_key))
            for entry in config.get("timeframes") or []:
                entry = _as_mapping(entry)
                indicators = entry.get("indicators")
                timeframes.append(
                    TimeframeInfo(
                        id=str(entry.get("id") or ""),
                        timeframe=str(entry.get("timeframe") or ""),
                        indicators=dict(indicators) if isinstance(indicators, Mapping) else {},
                    )
                )
        return cls(timeframes=timeframes)

    @classmethod
    def from_graph(cls, nodes: Iterable[Any], global_variables: Iterable[Any] = ()) -> "RenderContext":
        """Build a context from a whole graph: start node metadata plus variable names."""

        node_list = [_as_mapping(node) for node in nodes]
        start = next((node for node in node_list if node.get("type") == "startNode"), None)
        context = cls.from_start_data(start.get("data") if start else None)
        for node in node_list:
            data = _as_mapping(node.get("data"))
            for variable in data.get("trailingVariables") or []:
                variable = _as_mapping(variable)
                if variable.get("id"):
                    context.variable_names[str(variable["id"])] = str(variable.get("name") or "")
        for variable in global_variables:
            variable = _as_mapping(variable)
            if variable.get("id"):
                context.global_variable_names[str(variable["id"])] = str(variable.get("name") or "")
        return context

    def find_indicator(self, key: str) -> Optional[Tuple[Mapping[str, Any], str]]:
        for info in self.timeframes:
            found = info.indicators.get(key)
            if found:
                return _as_mapping(found), info.timeframe
        return None

    def timeframe_for(self, timeframe_id: Optional[str]) -> str:
        if not timeframe_id:
            return ""
        for info in self.timeframes:
            if info.id == timeframe_id:
                return info.timeframe
        return ""


def _as_mapping(value: Any) -> Mapping[str, Any]:
    if value is None:
        return {}
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, exclude_none=True)
    if isinstance(value, Mapping):
        return value
    return {}


def _format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _coerce_expression(expr: Any) -> Any:
    if isinstance(expr, BaseModel):
        return expr
    return _EXPRESSION_ADAPTER.validate_python(expr)


def is_sentinel(text: str) -> bool:
    return "Incomplete" in text or "Error" in text


def expression_to_string(expr: Any, context: Optional[RenderContext] = None) -> str:
    """Render one expression. Unknown kinds and malformed payloads never raise."""

    if expr is None:
        return "Incomplete expression"
    context = context or RenderContext()
    try:
        model = _coerce_expression(expr)
    except PydanticValidationError:
        kind = expr.get("type") if isinstance(expr, Mapping) else None
        if kind not in EXPRESSION_KINDS:
            return UNKNOWN_EXPRESSION
        logger.debug("Malformed expression | type=%s", kind)
        return ERROR_EXPRESSION
    try:
        return _render(model, context)
    except Exception:
        logger.warning("Failed to render expression | type=%s", getattr(model, "type", None), exc_info=True)
        return ERROR_EXPRESSION


def _render(expr: Any, context: RenderContext) -> str:
    kind = expr.type
    if kind == "constant":
        for candidate in (expr.value, expr.number_value, expr.string_value, expr.boolean_value):
            if candidate is not None:
                return _format_scalar(candidate)
        return "0"

    if kind == "indicator":
        return _render_indicator(expr, context)

    if kind == "candle_data":
        timeframe = context.timeframe_for(expr.timeframe_id)
        if not timeframe:
            timeframe = timeframe_display(expr.timeframe_id) if expr.timeframe_id else (expr.timeframe or "")
        return format_display_name(
            expr.field or expr.data_field or "Close",
            instrument_type=expr.instrument_type,
            timeframe=timeframe,
            offset=expr.offset,
        )

    if kind == "live_data":
        live_field = expr.field or "LTP"
        if live_field in ("mark", "ltp"):
            live_field = "LTP"
        return format_display_name(live_field, instrument_type=expr.instrument_type)

    if kind == "time_function":
        return expr.time_value or "Time"

    if kind == "current_time":
        return "Current Time"

    if kind == "position_data":
        position_field = expr.field or expr.position_field or "Position Data"
        label = POSITION_FIELD_NAMES.get(position_field, position_field)
        return f"{label} ({expr.vpi})" if expr.vpi else label

    if kind == "position_time":
        label = "Entry Time" if expr.time_field == "entryTime" else "Exit Time"
        return f"{label} ({expr.vpi})" if expr.vpi else label

    if kind == "external_trigger":
        return expr.trigger_type or expr.trigger_id or "External Trigger"

    if kind == "node_variable":
        return format_node_variable_reference(expr.node_id, expr.variable_name)

    if kind == "global_variable":
        name = expr.global_variable_name or context.global_variable_names.get(expr.global_variable_id, "")
        return sanitize_name(name) if name else "Global Variable"

    if kind == "trailing_variable":
        if not expr.variable_id:
            return "Trailing Variable"
        name = context.variable_names.get(expr.variable_id) or normalize_identifier(expr.variable_id)
        return f"{name}.{expr.trailing_field}"

    if kind in ("pnl_data", "underlying_pnl"):
        return _render_pnl(expr)

    if kind == "expression":
        if expr.left is not None and expr.right is not None and expr.operation:
            return f"({_render(expr.left, context)} {expr.operation} {_render(expr.right, context)})"
        return expr.expression_string or "Complex Expression"

    if kind == "function":
        if expr.expressions:
            rendered = ", ".join(_render(item, context) for item in expr.expressions)
            return f"{expr.function_name}({rendered})"
        return "Function Expression"

    if kind == "math_expression":
        if not expr.items:
            return "Incomplete math expression"
        pieces: List[str] = []
        for index, item in enumerate(expr.items):
            rendered = _render(item.expression, context)
            if index == 0:
                pieces.append(rendered)
            else:
                pieces.append(f"{item.operator or '+'} {rendered}")
        text = " ".join(pieces)
        return f"({text})" if len(expr.items) > 1 else text

    if kind == "time_offset":
        sign = "+" if expr.direction == "after" else "-"
        return f"{_render(expr.base_time, context)} {sign} {_format_scalar(float(expr.offset_value))} {expr.offset_type}"

    if kind == "candle_range":
        return _render_candle_range(expr, context)

    if kind == "aggregation":
        if expr.source_type == "candle_range":
            if expr.candle_range is None:
                return "Incomplete aggregation"
            inner = _render_candle_range(expr.candle_range, context)
            if expr.ohlcv_field:
                inner = f"{inner}.{expr.ohlcv_field}"
        else:
            if not expr.expressions:
                return "Incomplete aggregation"
            inner = ", ".join(_render(item, context) for item in expr.expressions)
        return f"{expr.aggregation_type}({inner})"

    if kind == "list":
        return "[" + ", ".join(_render(item, context) for item in expr.items) + "]"

    return UNKNOWN_EXPRESSION


def _render_indicator(expr: Any, context: RenderContext) -> str:
    key = expr.indicator_id or expr.name
    name = "Indicator"
    timeframe = ""
    if key:
        found = context.find_indicator(key)
        if found is not None:
            meta, timeframe = found
            name = str(meta.get("display_name") or meta.get("indicator_name") or key)
        else:
            name = normalize_identifier(key)
    if not timeframe:
        timeframe = context.timeframe_for(expr.timeframe_id)
    if not timeframe:
        timeframe = timeframe_display(expr.timeframe_id) if expr.timeframe_id else (expr.timeframe or "")
    return format_display_name(
        name,
        instrument_type=expr.instrument_type,
        timeframe=timeframe,
        parameter=expr.indicator_param or expr.parameter,
        offset=expr.offset,
    )


def _render_pnl(expr: Any) -> str:
    label = PNL_LABELS.get(expr.pnl_type, "Total")
    noun = "Underlying P&L" if expr.type == "underlying_pnl" else "P&L"
    if expr.scope == "overall":
        return f"{label} {noun} (Overall)"
    if expr.vpi and expr.vpi != "_any":
        return f"{label} {noun} ({expr.vpi})"
    return f"{label} {noun} (Position)"


def _render_candle_range(expr: Any, context: RenderContext) -> str:
    prefix = ".".join(part for part in (expr.instrument_type, context.timeframe_for(expr.timeframe_id)) if part)
    if expr.range_type == "by_time":
        body = f"Candles[{expr.start_time or '?'}-{expr.end_time or '?'}]"
    elif expr.range_type == "relative":
        reference = expr.reference_time or expr.reference_vpi or expr.reference_type or "current_candle"
        body = f"Candles[{expr.candle_count or 0} {expr.direction or 'before'} {reference}]"
    else:
        body = f"Candles[{expr.start_index if expr.start_index is not None else 0}..{expr.end_index if expr.end_index is not None else 0}]"
    return f"{prefix}.{body}" if prefix else body


def _field(value: Any, wire_name: str, attr_name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(wire_name, value.get(attr_name))
    return getattr(value, attr_name, None)


def _is_group(value: Any) -> bool:
    if isinstance(value, Mapping):
        return "groupLogic" in value or "group_logic" in value or "conditions" in value
    return hasattr(value, "group_logic")


def condition_to_string(condition: Any, context: Optional[RenderContext] = None) -> str:
    try:
        lhs = _field(condition, "lhs", "lhs")
        rhs = _field(condition, "rhs", "rhs")
        if not lhs or not rhs:
            return INCOMPLETE_CONDITION
        operator = _field(condition, "operator", "operator") or ">"
        left = expression_to_string(lhs, context)
        right = expression_to_string(rhs, context)
        if operator in RANGE_OPERATORS:
            upper = _field(condition, "rhsUpper", "rhs_upper")
            if not upper:
                return INCOMPLETE_CONDITION
            return f"{left} {operator} {right} and {expression_to_string(upper, context)}"
        return f"{left} {operator} {right}"
    except Exception:
        logger.warning("Failed to render condition", exc_info=True)
        return ERROR_CONDITION


def group_condition_to_string(group: Any, context: Optional[RenderContext] = None) -> str:
    """
    Render a condition tree.

    Empty groups render as an empty string. Children whose rendering is a
    sentinel are dropped so the remaining siblings still produce a preview.
    """

    if group is None:
        return ""
    try:
        children = _field(group, "conditions", "conditions") or []
        logic = _field(group, "groupLogic", "group_logic") or "AND"
        rendered: List[str] = []
        for child in children:
            if _is_group(child):
                text = group_condition_to_string(child, context)
                if text and not is_sentinel(text):
                    rendered.append(f"({text})")
            else:
                text = condition_to_string(child, context)
                if text and not is_sentinel(text):
                    rendered.append(text)
        return f" {logic} ".join(rendered)
    except Exception:
        logger.warning("Failed to render condition group", exc_info=True)
        return ERROR_CONDITION


def conditions_preview(groups: Optional[Sequence[Any]], context: Optional[RenderContext] = None) -> str:
    """Render several root groups, dropping empty and sentinel results, joined by `` | ``."""

    if not groups:
        return ""
    rendered = (group_condition_to_string(group, context) for group in groups)
    return " | ".join(text for text in rendered if text and not is_sentinel(text))


__all__ = [
    "INCOMPLETE_CONDITION",
    "ERROR_CONDITION",
    "ERROR_EXPRESSION",
    "UNKNOWN_EXPRESSION",
    "TimeframeInfo",
    "RenderContext",
    "is_sentinel",
    "expression_to_string",
    "condition_to_string",
    "group_condition_to_string",
    "conditions_preview",
]
