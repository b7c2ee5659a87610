"""
Headless node editors.

An editor is bound to one node of a `GraphStore`. It owns no state of its
own: every edit is a merge into the node's data, either applied at once or
queued on one of the debounced queues of its `EditorContext`. Editors for
node kinds with a fixed role correct `actionType` when mounted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from strategy_lab.backend.core.base_models import to_wire_keys
from strategy_lab.backend.core.conditions.factories import create_default_condition, create_group_condition
from strategy_lab.backend.core.conditions.models import Condition, ConditionItem, Expression, GroupCondition, GroupLogic
from strategy_lab.backend.core.conditions.rendering import RenderContext, conditions_preview
from strategy_lab.backend.core.conditions.tree import insert_item, remove_item, replace_item
from strategy_lab.backend.core.errors import ConflictError, ValidationError
from strategy_lab.backend.core.graph.models import (
    GlobalVariable,
    GlobalVariableUpdate,
    Node,
    NodeData,
    NodeVariable,
    Position,
    default_position,
)
from strategy_lab.backend.core.persistence.debounce import Clock, DebouncedUpdateQueue
from strategy_lab.backend.core.reentry.resolver import ReEntryLinkResolver, target_max_entries
from strategy_lab.backend.core.signals import SignalBus, SignalType
from strategy_lab.backend.core.variables import global_assignments, snapshot, trailing
from strategy_lab.backend.core.variables.global_assignments import AssignmentClipboard
from strategy_lab.backend.settings import StrategyLabSettings, get_settings

if TYPE_CHECKING:
    from strategy_lab.backend.core.graph.store import GraphStore

logger = logging.getLogger(__name__)


@dataclass
class EditorContext:
    """Collaborators shared by every editor of one strategy session."""

    store: "GraphStore"
    signals: SignalBus = field(default_factory=SignalBus)
    clipboard: AssignmentClipboard = field(default_factory=AssignmentClipboard)
    resolver: Optional[ReEntryLinkResolver] = None
    queues: Dict[str, DebouncedUpdateQueue] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        store: "GraphStore",
        settings: Optional[StrategyLabSettings] = None,
        clock: Optional[Clock] = None,
        signals: Optional[SignalBus] = None,
        clipboard: Optional[AssignmentClipboard] = None,
    ) -> "EditorContext":
        settings = settings or get_settings()
        signals = signals or SignalBus()

        def apply(node_id: str, partial: Dict[str, Any]) -> None:
            if store.get_node(node_id) is None:
                logger.info("Dropping debounced update for removed node | node=%s", node_id)
                return
            store.update_node_data(node_id, partial)

        delays = {
            "label": settings.label_debounce_seconds,
            "conditions": settings.condition_debounce_seconds,
            "variables": settings.variable_debounce_seconds,
        }
        queue_kwargs: Dict[str, Any] = {"clock": clock} if clock is not None else {}
        queues = {name: DebouncedUpdateQueue(apply, delay, name=name, **queue_kwargs) for name, delay in delays.items()}
        return cls(
            store=store,
            signals=signals,
            clipboard=clipboard or AssignmentClipboard(),
            resolver=ReEntryLinkResolver(store, signals=signals),
            queues=queues,
        )

    def show_strategy_overview(self) -> Node:
        """Ask the side panel to open on the virtual overview node, creating it when missing."""

        overview = self.store.ensure_overview_node()
        self.signals.emit(SignalType.SHOW_STRATEGY_OVERVIEW, node_id=overview.id)
        return overview

    def tick(self) -> int:
        return sum(queue.tick() for queue in self.queues.values())

    def flush(self) -> int:
        return sum(queue.flush() for queue in self.queues.values())

    def close(self) -> int:
        written = sum(queue.close() for queue in self.queues.values())
        if self.resolver is not None:
            self.resolver.close()
        return written


class BaseNodeEditor:
    """Label editing and the mount/unmount lifecycle shared by every node kind."""

    fixed_action_type: Optional[str] = None

    def __init__(self, context: EditorContext, node_id: str) -> None:
        self.context = context
        self.store = context.store
        self.node_id = node_id
        self.mounted = False

    @property
    def node(self) -> Node:
        return self.store.require_node(self.node_id)

    @property
    def data(self) -> NodeData:
        return self.node.data

    def mount(self) -> bool:
        """Bind to the node; returns True when a corrective mutation was issued."""

        self.mounted = True
        if self.fixed_action_type is None:
            return False
        current = getattr(self.data, "action_type", None)
        if current == self.fixed_action_type:
            return False
        logger.info(
            "Correcting action type | node=%s found=%s expected=%s", self.node_id, current, self.fixed_action_type
        )
        self.store.update_node_data(self.node_id, {"actionType": self.fixed_action_type})
        return True

    def unmount(self) -> None:
        """Write every pending debounced edit of this node before letting go of it."""

        for queue in self.context.queues.values():
            queue.flush(self.node_id)
        self.mounted = False

    def _queue(self, name: str, partial: Dict[str, Any]) -> None:
        queue = self.context.queues.get(name)
        if queue is None:
            self.store.update_node_data(self.node_id, partial)
        else:
            queue.submit(self.node_id, partial)

    def _current(self, wire_key: str, default: Any = None) -> Any:
        """Latest value of a data field, pending debounced edits included."""

        for queue in self.context.queues.values():
            pending = queue.pending(self.node_id)
            if wire_key in pending:
                return pending[wire_key]
        value = self.data.to_wire().get(wire_key)
        return default if value is None else value

    @property
    def label(self) -> str:
        return self._current("label", "")

    def update_label(self, label: str) -> None:
        self._queue("label", {"label": label})

    def update_data(self, partial: Dict[str, Any], record_history: bool = False) -> Node:
        """Merge arbitrary fields immediately."""

        return self.store.update_node_data(self.node_id, partial, record_history=record_history)


class SnapshotVariablesMixin(BaseNodeEditor):
    """Snapshot variables kept under `variables`, written through the variables queue."""

    @property
    def variables(self) -> List[NodeVariable]:
        return [NodeVariable.model_validate(item) for item in self._current("variables", [])]

    def _write_variables(self, variables: Sequence[NodeVariable]) -> None:
        self._queue("variables", {"variables": [variable.to_wire() for variable in variables]})

    def add_variable(self, name: Optional[str] = None, expression: Optional[Expression] = None) -> NodeVariable:
        variables, created = snapshot.add_snapshot_variable(self.variables, self.node_id, name, expression)
        self._write_variables(variables)
        return created

    def rename_variable(self, variable_id: str, name: str) -> None:
        self._write_variables(snapshot.rename_snapshot_variable(self.variables, variable_id, name))

    def update_variable_expression(self, variable_id: str, expression: Expression) -> None:
        self._write_variables(snapshot.update_snapshot_expression(self.variables, variable_id, expression))

    def remove_variable(self, variable_id: str) -> None:
        self._write_variables(snapshot.remove_snapshot_variable(self.variables, variable_id))


class ConditionsMixin(BaseNodeEditor):
    """Edits root condition groups stored under `conditions` (or another list-valued key)."""

    def conditions(self, key: str = "conditions") -> List[GroupCondition]:
        return [GroupCondition.model_validate(item) for item in self._current(key, [])]

    def render_context(self) -> RenderContext:
        return RenderContext.from_graph(self.store.nodes, self.store.global_variables)

    def set_conditions(self, groups: Sequence[GroupCondition], key: str = "conditions") -> str:
        """Replace the groups under `key` and refresh `<key>Preview`; returns the preview."""

        preview = conditions_preview(groups, self.render_context())
        self._queue("conditions", {key: [group.to_wire() for group in groups], f"{key}Preview": preview})
        return preview

    def _root_id(self, key: str) -> str:
        groups = self.conditions(key)
        if not groups:
            raise ValidationError(f"Node '{self.node_id}' has no root condition group under '{key}'.")
        return groups[0].id

    def add_condition(
        self, parent_id: Optional[str] = None, condition: Optional[Condition] = None, key: str = "conditions"
    ) -> Condition:
        created = condition or create_default_condition()
        self._insert(parent_id, created, key)
        return created

    def add_group(
        self, parent_id: Optional[str] = None, logic: GroupLogic = "AND", key: str = "conditions"
    ) -> GroupCondition:
        created = create_group_condition(logic, [create_default_condition()])
        self._insert(parent_id, created, key)
        return created

    def _insert(self, parent_id: Optional[str], item: ConditionItem, key: str) -> None:
        groups = self.conditions(key)
        target = parent_id or self._root_id(key)
        try:
            updated = insert_item(groups, target, item)
        except KeyError as exc:
            raise ValidationError(f"Unknown condition group '{target}'.") from exc
        self.set_conditions(updated, key)

    def update_condition(self, item_id: str, item: ConditionItem, key: str = "conditions") -> None:
        self.set_conditions(replace_item(self.conditions(key), item_id, item), key)

    def remove_condition(self, item_id: str, key: str = "conditions") -> None:
        self.set_conditions(remove_item(self.conditions(key), item_id), key)


class GlobalAssignmentsMixin(BaseNodeEditor):
    @property
    def assignments(self) -> List[GlobalVariableUpdate]:
        return [GlobalVariableUpdate.model_validate(item) for item in self._current("globalVariableUpdates", [])]

    @property
    def global_variables(self) -> List[GlobalVariable]:
        return list(self.store.global_variables)

    def _write_assignments(self, assignments: Sequence[GlobalVariableUpdate]) -> None:
        self._queue("variables", {"globalVariableUpdates": [assignment.to_wire() for assignment in assignments]})

    def available_global_variables(self) -> List[GlobalVariable]:
        return global_assignments.available_global_variables(self.global_variables, self.assignments)

    def add_assignment(self, global_variable_id: str, expression: Optional[Expression] = None) -> GlobalVariableUpdate:
        assignments, created = global_assignments.add_assignment(
            self.assignments, self.global_variables, global_variable_id, expression
        )
        self._write_assignments(assignments)
        return created

    def update_assignment_expression(self, assignment_id: str, expression: Expression) -> None:
        self._write_assignments(
            global_assignments.update_assignment_expression(self.assignments, assignment_id, expression)
        )

    def remove_assignment(self, assignment_id: str) -> None:
        self._write_assignments(global_assignments.remove_assignment(self.assignments, assignment_id))

    def copy_assignments(self) -> int:
        return self.context.clipboard.copy(self.assignments)

    def paste_assignments(self) -> int:
        assignments, pasted = self.context.clipboard.paste(self.assignments, self.global_variables)
        if pasted:
            self._write_assignments(assignments)
        return pasted

    def open_global_variables(self) -> None:
        self.context.signals.emit(SignalType.OPEN_GLOBAL_VARIABLES, node_id=self.node_id)


class StartNodeEditor(BaseNodeEditor):
    def update_instrument_config(
        self, trading: Optional[Dict[str, Any]] = None, supporting: Optional[Dict[str, Any]] = None
    ) -> Node:
        partial: Dict[str, Any] = {}
        if trading is not None:
            partial["tradingInstrumentConfig"] = trading
        if supporting is not None:
            partial["supportingInstrumentConfig"] = supporting
        return self.update_data(partial, record_history=True)

    def render_context(self) -> RenderContext:
        return RenderContext.from_start_data(self.data)


class SignalNodeEditor(ConditionsMixin, SnapshotVariablesMixin):
    pass


class ActionNodeEditor(SnapshotVariablesMixin, GlobalAssignmentsMixin):
    """
    Position management for order nodes.

    Every positions change re-derives the node's trailing variables in the
    same merge, and `vpi` values are kept unique across the whole strategy.
    """

    @property
    def positions(self) -> List[Position]:
        return list(getattr(self.data, "positions", []))

    def _vpis_on_other_nodes(self) -> Dict[str, str]:
        used: Dict[str, str] = {}
        for node in self.store.nodes:
            if node.id == self.node_id:
                continue
            for position in getattr(node.data, "positions", None) or []:
                used[position.vpi] = node.id
        return used

    def _ensure_unique_vpis(self, positions: Sequence[Position]) -> None:
        """Every `vpi` in `positions` must be unused by other nodes and appear once."""

        others = self._vpis_on_other_nodes()
        seen: set[str] = set()
        for position in positions:
            owner = others.get(position.vpi) or (self.node_id if position.vpi in seen else None)
            if owner is not None:
                raise ConflictError(
                    f"Position id '{position.vpi}' is already used by node '{owner}'.",
                    choices=("cancel",),
                    existing_id=owner,
                )
            seen.add(position.vpi)

    def set_positions(self, positions: Sequence[Position]) -> Node:
        self._ensure_unique_vpis(positions)
        existing = list(getattr(self.data, "trailing_variables", []))
        derived = trailing.derive_trailing_variables(positions, existing)
        return self.update_data(
            {
                "positions": [position.to_wire() for position in positions],
                "trailingVariables": [variable.to_wire() for variable in derived],
            },
            record_history=True,
        )

    def add_position(self, position: Optional[Position] = None) -> Position:
        positions = self.positions
        if position is None:
            taken = {*self._vpis_on_other_nodes(), *(p.vpi for p in positions)}
            index = len(positions)
            candidate = Position.model_validate(default_position(self.node_id, index))
            while candidate.vpi in taken:
                index += 1
                candidate = Position.model_validate(default_position(self.node_id, index))
            position = candidate
        self.set_positions([*positions, position])
        return position

    def update_position(self, vpi: str, changes: Dict[str, Any]) -> Position:
        """Merge `changes` into one position; a clashing new `vpi` leaves the store untouched."""

        positions = self.positions
        current = next((position for position in positions if position.vpi == vpi), None)
        if current is None:
            raise ValidationError(f"Unknown position '{vpi}' on node '{self.node_id}'.")
        merged = {**current.to_wire(), **to_wire_keys(changes)}
        updated = Position.model_validate(merged)
        self.set_positions([updated if position.vpi == vpi else position for position in positions])
        return updated

    def remove_position(self, vpi: str) -> None:
        self.set_positions([position for position in self.positions if position.vpi != vpi])

    def set_trailing(self, vpi: str, enabled: bool) -> Node:
        if not any(position.vpi == vpi for position in self.positions):
            raise ValidationError(f"Unknown position '{vpi}' on node '{self.node_id}'.")
        return self.set_positions(trailing.set_trailing_enabled(self.positions, vpi, enabled))

    @property
    def trailing_variables(self) -> List[Any]:
        return list(getattr(self.data, "trailing_variables", []))


class EntryNodeEditor(ActionNodeEditor):
    fixed_action_type = "entry"

    def set_max_entries(self, value: int, vpi: Optional[str] = None) -> Position:
        if value < 1:
            raise ValidationError("maxEntries must be at least 1.")
        positions = self.positions
        if not positions:
            raise ValidationError(f"Entry node '{self.node_id}' has no positions.")
        return self.update_position(vpi or positions[0].vpi, {"maxEntries": value})


class ExitNodeEditor(ActionNodeEditor):
    fixed_action_type = "exit"

    def set_exit_type(self, exit_type: str) -> Node:
        return self.update_data({"exitType": exit_type}, record_history=True)


class ModifyNodeEditor(ActionNodeEditor):
    fixed_action_type = "modify"

    def set_target(self, target_node_id: Optional[str], target_position_id: Optional[str]) -> Node:
        return self.update_data(
            {"targetNodeId": target_node_id, "targetPositionId": target_position_id}, record_history=True
        )


class AlertNodeEditor(ActionNodeEditor):
    fixed_action_type = "alert"

    def update_alert(self, **fields: Any) -> Node:
        return self.update_data(fields, record_history=True)


class TerminatorNodeEditor(BaseNodeEditor):
    pass


class RetryNodeEditor(ConditionsMixin, SnapshotVariablesMixin):
    fixed_action_type = "retry"

    def update_retry_config(self, group_number: Optional[int] = None, max_entries: Optional[int] = None) -> Node:
        config = getattr(self.data, "retry_config").to_wire()
        if group_number is not None:
            config["groupNumber"] = group_number
        if max_entries is not None:
            config["maxEntries"] = max_entries
        return self.update_data({"retryConfig": config}, record_history=True)


class ReEntrySignalNodeEditor(ConditionsMixin, SnapshotVariablesMixin):
    """Conditions and variables plus the target link managed by the resolver."""

    @property
    def resolver(self) -> ReEntryLinkResolver:
        if self.context.resolver is None:
            self.context.resolver = ReEntryLinkResolver(self.store, signals=self.context.signals)
        return self.context.resolver

    @property
    def target_entry_node_id(self) -> Optional[str]:
        return getattr(self.data, "target_entry_node_id", None)

    @property
    def max_entries(self) -> int:
        """Read-only mirror of the target's first position."""

        target_id = self.target_entry_node_id
        return target_max_entries(self.store.get_node(target_id) if target_id else None)

    def entry_options(self) -> List[Dict[str, str]]:
        return [{"id": node.id, "label": node.data.label or "Entry"} for node in self.resolver.entry_nodes()]

    def select_target(self, target_id: Optional[str]) -> Node:
        return self.resolver.select_target(self.node_id, target_id)

    @property
    def target_warning(self) -> bool:
        return self.resolver.target_warning(self.node_id)


__all__ = [
    "EditorContext",
    "BaseNodeEditor",
    "StartNodeEditor",
    "SignalNodeEditor",
    "ActionNodeEditor",
    "EntryNodeEditor",
    "ExitNodeEditor",
    "ModifyNodeEditor",
    "AlertNodeEditor",
    "TerminatorNodeEditor",
    "RetryNodeEditor",
    "ReEntrySignalNodeEditor",
]
