import pytest

from strategy_lab.backend.core.conditions.factories import create_condition, create_constant_expression
from strategy_lab.backend.core.conditions.models import GroupCondition, IndicatorExpression
from strategy_lab.backend.core.errors import ConflictError, ValidationError
from strategy_lab.backend.core.graph.editors import (
    EditorContext,
    EntryNodeEditor,
    ExitNodeEditor,
    RetryNodeEditor,
    SignalNodeEditor,
    StartNodeEditor,
)
from strategy_lab.backend.core.graph.models import NodeType
from strategy_lab.backend.core.graph.registry import create_node
from strategy_lab.backend.core.graph.store import GraphStore
from strategy_lab.backend.core.signals import SignalType
from strategy_lab.backend.settings import StrategyLabSettings


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _context(*node_types: NodeType) -> tuple[EditorContext, FakeClock]:
    store = GraphStore(history_limit=20)
    counters: dict[NodeType, int] = {}
    for node_type in node_types:
        counters[node_type] = counters.get(node_type, 0) + 1
        prefix = {
            NodeType.START: "start",
            NodeType.SIGNAL: "signal",
            NodeType.ENTRY: "entry",
            NodeType.EXIT: "exit",
            NodeType.RETRY: "retry",
        }[node_type]
        store.add_node(create_node(node_type, f"{prefix}-{counters[node_type]}"))
    clock = FakeClock()
    return EditorContext.create(store, settings=StrategyLabSettings(), clock=clock), clock


def test_mount_corrects_action_type_once() -> None:
    context, _ = _context(NodeType.ENTRY)
    context.store.update_node_data("entry-1", {"actionType": "alert"})

    editor = EntryNodeEditor(context, "entry-1")
    assert editor.mount() is True
    assert context.store.get_node("entry-1").data.action_type == "entry"
    assert editor.mount() is False


def test_label_edits_are_debounced() -> None:
    context, clock = _context(NodeType.SIGNAL)
    editor = SignalNodeEditor(context, "signal-1")
    editor.mount()

    editor.update_label("Break")
    editor.update_label("Breakout")
    assert editor.label == "Breakout"
    assert context.store.get_node("signal-1").data.label == "Signal 1"

    clock.advance(0.4)
    assert context.tick() == 0
    clock.advance(0.2)
    assert context.tick() == 1
    assert context.store.get_node("signal-1").data.label == "Breakout"


def test_unmount_flushes_pending_conditions_with_preview() -> None:
    context, _ = _context(NodeType.SIGNAL)
    editor = SignalNodeEditor(context, "signal-1")
    editor.mount()

    group = editor.add_group(logic="OR")
    editor.add_condition(parent_id=group.id, condition=create_condition("<", create_constant_expression(value=1), create_constant_expression(value=2)))
    editor.add_condition(condition=create_condition(">", create_constant_expression(value=5), create_constant_expression(value=3)))
    assert context.store.get_node("signal-1").data.conditions[0].conditions == []

    editor.unmount()
    data = context.store.get_node("signal-1").data
    root = data.conditions[0]
    assert isinstance(root.conditions[0], GroupCondition)
    assert data.to_wire()["conditionsPreview"] == "(0 > 0 OR 1 < 2) AND 5 > 3"

    with pytest.raises(ValidationError):
        editor.add_condition(parent_id="missing")


def test_condition_preview_uses_start_node_metadata() -> None:
    context, _ = _context(NodeType.START, NodeType.SIGNAL)
    StartNodeEditor(context, "start-1").update_instrument_config(
        trading={"timeframes": [{"id": "tf1", "timeframe": "5m", "indicators": {"rsi_1": {"display_name": "RSI(14)"}}}]}
    )
    editor = SignalNodeEditor(context, "signal-1")
    preview_condition = create_condition(">", IndicatorExpression(indicator_id="rsi_1", offset=0), create_constant_expression(value=30))
    editor.add_condition(condition=preview_condition)
    context.flush()

    assert context.store.get_node("signal-1").data.to_wire()["conditionsPreview"] == "Current[5m.RSI(14)] > 30"


def test_snapshot_variables_are_named_and_unique() -> None:
    context, _ = _context(NodeType.SIGNAL)
    editor = SignalNodeEditor(context, "signal-1")

    first = editor.add_variable()
    second = editor.add_variable()
    assert (first.name, second.name) == ("variable1", "variable2")
    with pytest.raises(ConflictError):
        editor.add_variable(name="variable1")
    with pytest.raises(ValidationError):
        editor.rename_variable(first.id, "  ")

    editor.rename_variable(first.id, "entryClose")
    editor.remove_variable(second.id)
    context.flush()

    variables = context.store.get_node("signal-1").data.variables
    assert [variable.name for variable in variables] == ["entryClose"]
    assert variables[0].node_id == "signal-1"


def test_position_ids_are_unique_across_the_strategy() -> None:
    context, _ = _context(NodeType.ENTRY, NodeType.ENTRY)
    first = EntryNodeEditor(context, "entry-1")
    second = EntryNodeEditor(context, "entry-2")

    with pytest.raises(ConflictError) as excinfo:
        second.update_position("entry-2-pos1", {"vpi": "entry-1-pos1"})
    assert excinfo.value.existing_id == "entry-1"
    assert [p.vpi for p in second.positions] == ["entry-2-pos1"]

    added = first.add_position()
    assert added.vpi == "entry-1-pos2"
    with pytest.raises(ConflictError):
        first.add_position(added)


def test_replacing_positions_checks_ids_across_the_strategy() -> None:
    context, _ = _context(NodeType.ENTRY, NodeType.ENTRY)
    first = EntryNodeEditor(context, "entry-1")
    second = EntryNodeEditor(context, "entry-2")
    borrowed = first.positions[0]
    history_before = len(context.store.history)

    with pytest.raises(ConflictError) as excinfo:
        second.set_positions([*second.positions, borrowed])
    assert excinfo.value.existing_id == "entry-1"
    assert [p.vpi for p in second.positions] == ["entry-2-pos1"]
    assert len(context.store.history) == history_before

    with pytest.raises(ConflictError) as excinfo:
        second.set_positions([second.positions[0], second.positions[0]])
    assert excinfo.value.existing_id == "entry-2"


def test_positions_change_records_history_immediately() -> None:
    context, _ = _context(NodeType.ENTRY)
    editor = EntryNodeEditor(context, "entry-1")
    before = len(context.store.history)

    editor.set_max_entries(3)
    assert len(context.store.history) == before + 1
    assert editor.positions[0].max_entries == 3
    with pytest.raises(ValidationError):
        editor.set_max_entries(0)


def test_trailing_variables_follow_position_configs() -> None:
    context, _ = _context(NodeType.ENTRY)
    editor = EntryNodeEditor(context, "entry-1")

    editor.set_trailing("entry-1-pos1", True)
    names = sorted(variable.name for variable in editor.trailing_variables)
    assert names == ["Trailing_entry-1-pos1_Position", "Trailing_entry-1-pos1_Underlying"]
    ids = {variable.name: variable.id for variable in editor.trailing_variables}

    editor.update_position("entry-1-pos1", {"quantity": 5})
    assert {variable.name: variable.id for variable in editor.trailing_variables} == ids

    editor.update_position("entry-1-pos1", {"optionDetails": None})
    assert [variable.name for variable in editor.trailing_variables] == ["Trailing_entry-1-pos1_Position"]

    editor.set_trailing("entry-1-pos1", False)
    assert editor.trailing_variables == []
    assert editor.positions[0].trailing_config is None


def test_global_assignments_copy_and_paste_is_idempotent() -> None:
    context, _ = _context(NodeType.EXIT, NodeType.EXIT)
    context.store.add_global_variable({"id": "g1", "name": "counter"})
    context.store.add_global_variable({"id": "g2", "name": "flag"})
    source = ExitNodeEditor(context, "exit-1")
    target = ExitNodeEditor(context, "exit-2")

    source.add_assignment("g1", create_constant_expression(value=1))
    assert [variable.id for variable in source.available_global_variables()] == ["g2"]
    with pytest.raises(ConflictError):
        source.add_assignment("g1")
    with pytest.raises(ValidationError):
        source.add_assignment("unknown")

    assert source.copy_assignments() == 1
    assert target.paste_assignments() == 1
    assert target.paste_assignments() == 0
    context.flush()

    pasted = context.store.get_node("exit-2").data.global_variable_updates
    assert [assignment.global_variable_name for assignment in pasted] == ["counter"]
    assert pasted[0].id != context.store.get_node("exit-1").data.global_variable_updates[0].id

    target.open_global_variables()
    assert context.signals.history[-1].type == SignalType.OPEN_GLOBAL_VARIABLES


def test_show_strategy_overview_targets_the_single_virtual_node() -> None:
    context, _ = _context(NodeType.START)
    received = []
    context.signals.subscribe(SignalType.SHOW_STRATEGY_OVERVIEW, received.append)
    history_before = len(context.store.history)

    first = context.show_strategy_overview()
    second = context.show_strategy_overview()

    assert first.id == second.id
    assert first.is_virtual
    assert [signal.payload for signal in received] == [{"node_id": first.id}] * 2
    assert len(context.store.nodes_of_type(NodeType.STRATEGY_OVERVIEW)) == 1
    assert len(context.store.history) == history_before


def test_debounced_edit_for_removed_node_is_dropped() -> None:
    context, _ = _context(NodeType.SIGNAL)
    editor = SignalNodeEditor(context, "signal-1")
    editor.update_label("Gone")
    context.store.remove_node("signal-1")

    context.flush()
    assert context.store.get_node("signal-1") is None


def test_retry_editor_updates_config() -> None:
    context, _ = _context(NodeType.RETRY)
    editor = RetryNodeEditor(context, "retry-1")
    editor.update_retry_config(group_number=2, max_entries=4)

    config = context.store.get_node("retry-1").data.retry_config
    assert (config.group_number, config.max_entries) == (2, 4)
