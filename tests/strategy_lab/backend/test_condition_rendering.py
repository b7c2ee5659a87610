from strategy_lab.backend.core.conditions.factories import (
    add_math_item,
    create_condition,
    create_constant_expression,
    create_group_condition,
    create_math_expression,
    remove_math_item,
)
from strategy_lab.backend.core.conditions.models import (
    CandleDataExpression,
    Condition,
    ConstantExpression,
    GlobalVariableExpression,
    IndicatorExpression,
    PnLExpression,
)
from strategy_lab.backend.core.conditions.rendering import (
    ERROR_EXPRESSION,
    INCOMPLETE_CONDITION,
    UNKNOWN_EXPRESSION,
    RenderContext,
    condition_to_string,
    conditions_preview,
    expression_to_string,
    group_condition_to_string,
    is_sentinel,
)


def _const(value):
    return create_constant_expression(value=value)


def _context() -> RenderContext:
    return RenderContext.from_start_data(
        {
            "tradingInstrumentConfig": {
                "timeframes": [
                    {"id": "tf1", "timeframe": "5m", "indicators": {"rsi_1": {"display_name": "RSI(14)"}}},
                ]
            },
            "supportingInstrumentConfig": {
                "timeframes": [{"id": "tf2", "timeframe": "1h", "indicators": {}}],
            },
        }
    )


def test_constant_renders_its_value() -> None:
    assert expression_to_string(_const(5)) == "5"
    assert expression_to_string(ConstantExpression(value=30.0)) == "30"
    assert expression_to_string({"type": "constant", "value": True}) == "true"
    assert expression_to_string(None) == "Incomplete expression"


def test_indicator_offsets_and_context_lookup() -> None:
    context = _context()

    current = IndicatorExpression(indicator_id="rsi_1", instrument_type="TI", offset=0)
    previous = IndicatorExpression(indicator_id="rsi_1", instrument_type="TI", offset=-1)
    older = IndicatorExpression(indicator_id="rsi_1", instrument_type="TI", offset=-3)

    assert expression_to_string(current, context) == "Current[TI.5m.RSI(14)]"
    assert expression_to_string(previous, context) == "Previous[TI.5m.RSI(14)]"
    assert expression_to_string(older, context) == "3ago[TI.5m.RSI(14)]"


def test_indicator_without_metadata_falls_back_to_identifier() -> None:
    expr = IndicatorExpression(indicator_id="ema-fast", timeframe_id="tf_15m_abc")
    assert expression_to_string(expr) == "15m.ema_fast"


def test_candle_data_uses_timeframe_from_context() -> None:
    expr = CandleDataExpression(data_field="close", instrument_type="SI", timeframe_id="tf2", offset=-2)
    assert expression_to_string(expr, _context()) == "2ago[SI.1h.close]"


def test_global_variable_and_pnl_labels() -> None:
    context = RenderContext(global_variable_names={"g1": "day-high"})
    assert expression_to_string(GlobalVariableExpression(global_variable_id="g1"), context) == "day_high"
    assert expression_to_string(PnLExpression(pnl_type="realized", scope="position", vpi="p1")) == "Realized P&L (p1)"
    assert expression_to_string(PnLExpression()) == "Unrealized P&L (Overall)"


def test_math_expression_items() -> None:
    math_expr = add_math_item(create_math_expression([]), "+", _const(5))
    assert expression_to_string(math_expr) == "(0 + 5)"

    trimmed = remove_math_item(math_expr, 0)
    assert trimmed.items[0].operator is None
    assert expression_to_string(trimmed) == "5"


def test_unknown_and_malformed_expressions_render_sentinels() -> None:
    assert expression_to_string({"type": "not_a_kind"}) == UNKNOWN_EXPRESSION
    assert expression_to_string({"type": "indicator", "offset": "abc"}) == ERROR_EXPRESSION
    assert is_sentinel(ERROR_EXPRESSION)
    assert is_sentinel(INCOMPLETE_CONDITION)
    assert not is_sentinel("5 > 3")


def test_condition_rendering_including_range_operators() -> None:
    assert condition_to_string(create_condition(">", _const(5), _const(3))) == "5 > 3"
    assert condition_to_string(create_condition("between", _const(5), _const(1), _const(10))) == "5 between 1 and 10"
    assert condition_to_string(create_condition("not_between", _const(5), _const(1))) == INCOMPLETE_CONDITION
    assert condition_to_string(Condition(id="c1")) == INCOMPLETE_CONDITION


def test_group_drops_sentinel_children_and_wraps_nested_groups() -> None:
    nested = create_group_condition("OR", [create_condition("<", _const(1), _const(2)), create_condition("==", _const(3), _const(3))])
    root = create_group_condition(
        "AND",
        [create_condition(">", _const(5), _const(3)), Condition(id="broken"), nested],
    )

    assert group_condition_to_string(root) == "5 > 3 AND (1 < 2 OR 3 == 3)"
    assert group_condition_to_string(create_group_condition("AND", [])) == ""


def test_group_rendering_accepts_wire_dictionaries() -> None:
    group = {
        "id": "root",
        "groupLogic": "OR",
        "conditions": [
            {"id": "c1", "operator": ">=", "lhs": {"type": "constant", "value": 7}, "rhs": {"type": "constant", "value": 2}},
            {"id": "c2", "operator": ">", "lhs": {"type": "constant", "value": 1}, "rhs": {"type": "indicator", "offset": "abc"}},
        ],
    }
    assert group_condition_to_string(group) == "7 >= 2"


def test_conditions_preview_joins_roots_and_is_idempotent() -> None:
    first = create_group_condition("AND", [create_condition(">", _const(5), _const(3))])
    empty = create_group_condition("AND", [])
    second = create_group_condition("OR", [create_condition("<", _const(1), _const(2))])

    preview = conditions_preview([first, empty, second])
    assert preview == "5 > 3 | 1 < 2"
    assert conditions_preview([first, empty, second]) == preview
    assert conditions_preview([]) == ""
    assert conditions_preview(None) == ""


def test_render_context_from_graph_collects_names() -> None:
    nodes = [
        {"id": "start-1", "type": "startNode", "data": _context_start_data()},
        {"id": "entry-1", "type": "entryNode", "data": {"trailingVariables": [{"id": "tv1", "name": "Trailing_p1_Position"}]}},
    ]
    context = RenderContext.from_graph(nodes, [{"id": "g1", "name": "counter"}])

    assert context.timeframe_for("tf1") == "5m"
    assert context.variable_names == {"tv1": "Trailing_p1_Position"}
    assert context.global_variable_names == {"g1": "counter"}
    assert expression_to_string({"type": "trailing_variable", "variableId": "tv1"}, context) == "Trailing_p1_Position.trailingPosition"


def _context_start_data() -> dict:
    return {"tradingInstrumentConfig": {"timeframes": [{"id": "tf1", "timeframe": "5m", "indicators": {}}]}}
