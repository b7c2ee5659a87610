"""Node type registry: role, canonical action type, data model and editor per node kind."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Type

from strategy_lab.backend.core.conditions.factories import create_root_group
from strategy_lab.backend.core.errors import ValidationError
from strategy_lab.backend.core.graph import editors
from strategy_lab.backend.core.graph.models import (
    DATA_MODELS,
    ConditionNodeData,
    Node,
    NodeData,
    NodeType,
    XYPosition,
    default_position,
    now_ms,
)


class NodeRole(str, Enum):
    START = "start"
    ENTRY = "entry"
    EXIT = "exit"
    SIGNAL = "signal"
    ALERT = "alert"
    REENTRY = "reentry"
    TERMINATOR = "terminator"
    MODIFY = "modify"
    ACTION = "action"
    VIRTUAL = "virtual"


@dataclass(frozen=True)
class NodeKindSpec:
    """Everything the system knows about one node kind."""

    node_type: NodeType
    role: NodeRole
    label: str
    id_prefix: str
    data_model: Type[NodeData]
    editor: Type[editors.BaseNodeEditor]
    action_type: Optional[str] = None
    accepts_incoming: bool = True
    accepts_outgoing: bool = True
    numbered_label: bool = True
    description: str = ""


def _spec(node_type: NodeType, role: NodeRole, label: str, id_prefix: str, editor: Type[editors.BaseNodeEditor], **kwargs: Any) -> NodeKindSpec:
    return NodeKindSpec(
        node_type=node_type,
        role=role,
        label=label,
        id_prefix=id_prefix,
        data_model=DATA_MODELS[node_type],
        editor=editor,
        **kwargs,
    )


_SPECS: List[NodeKindSpec] = [
    _spec(NodeType.START, NodeRole.START, "Start", "start", editors.StartNodeEditor, accepts_incoming=False,
          description="Strategy entry point; owns instrument and indicator configuration."),
    _spec(NodeType.SIGNAL, NodeRole.SIGNAL, "Signal", "signal", editors.SignalNodeEditor,
          description="Condition tree gating downstream nodes."),
    _spec(NodeType.ENTRY_SIGNAL, NodeRole.SIGNAL, "Entry Signal", "entry-signal", editors.SignalNodeEditor,
          description="Condition tree gating an entry."),
    _spec(NodeType.EXIT_SIGNAL, NodeRole.SIGNAL, "Exit Signal", "exit-signal", editors.SignalNodeEditor,
          description="Condition tree gating an exit."),
    _spec(NodeType.ACTION, NodeRole.ACTION, "Action", "action", editors.ActionNodeEditor, action_type=None,
          description="Generic order action."),
    _spec(NodeType.ENTRY, NodeRole.ENTRY, "Entry", "entry", editors.EntryNodeEditor, action_type="entry",
          description="Opens one or more virtual positions."),
    _spec(NodeType.EXIT, NodeRole.EXIT, "Exit", "exit", editors.ExitNodeEditor, action_type="exit",
          description="Closes virtual positions."),
    _spec(NodeType.MODIFY, NodeRole.MODIFY, "Modify", "modify", editors.ModifyNodeEditor, action_type="modify",
          description="Modifies an open virtual position."),
    _spec(NodeType.ALERT, NodeRole.ALERT, "Alert", "alert", editors.AlertNodeEditor, action_type="alert",
          description="Sends a notification."),
    _spec(NodeType.END, NodeRole.TERMINATOR, "End", "end", editors.TerminatorNodeEditor, accepts_outgoing=False,
          description="Ends the strategy."),
    _spec(NodeType.FORCE_END, NodeRole.TERMINATOR, "Force End", "force-end", editors.TerminatorNodeEditor,
          accepts_outgoing=False, description="Ends the strategy and closes open positions."),
    _spec(NodeType.SQUARE_OFF, NodeRole.TERMINATOR, "Square off", "square-off", editors.TerminatorNodeEditor,
          description="Squares off every position."),
    _spec(NodeType.RETRY, NodeRole.REENTRY, "Re-Entry node", "retry", editors.RetryNodeEditor, action_type="retry",
          description="Legacy re-entry loop node."),
    _spec(NodeType.REENTRY_SIGNAL, NodeRole.REENTRY, "Re-Entry node", "re-entry-signal", editors.ReEntrySignalNodeEditor,
          numbered_label=False, description="Re-entry condition linked to exactly one entry node."),
    _spec(NodeType.STRATEGY_OVERVIEW, NodeRole.VIRTUAL, "Strategy Overview", "overview", editors.BaseNodeEditor,
          accepts_incoming=False, accepts_outgoing=False, numbered_label=False,
          description="Virtual marker; never exported."),
]


def _build_registry(specs: Iterable[NodeKindSpec]) -> Dict[NodeType, NodeKindSpec]:
    registry: Dict[NodeType, NodeKindSpec] = {}
    for spec in specs:
        if spec.node_type in registry:
            raise ValueError(f"Duplicate node kind registration: {spec.node_type.value}")
        registry[spec.node_type] = spec
    missing = [node_type.value for node_type in NodeType if node_type not in registry]
    if missing:
        raise ValueError(f"Node kinds without a registry entry: {', '.join(missing)}")
    return registry


NODE_REGISTRY: Dict[NodeType, NodeKindSpec] = _build_registry(_SPECS)

SIGNAL_LIKE = frozenset(t for t, s in NODE_REGISTRY.items() if s.role == NodeRole.SIGNAL)
ORDER_TYPES = frozenset({NodeType.ENTRY, NodeType.EXIT})
ENTRY_SOURCES = SIGNAL_LIKE | {NodeType.START, NodeType.RETRY, NodeType.REENTRY_SIGNAL}


def get_spec(node_type: NodeType | str) -> NodeKindSpec:
    return NODE_REGISTRY[NodeType(node_type)]


def role_of(node_type: NodeType | str) -> NodeRole:
    return get_spec(node_type).role


def connection_error(source_type: NodeType, target_type: NodeType) -> Optional[str]:
    """Return why `source_type -> target_type` is not allowed, or None when it is."""

    source = get_spec(source_type)
    target = get_spec(target_type)
    if not source.accepts_outgoing:
        return f"{source.label} nodes cannot have outgoing connections"
    if not target.accepts_incoming:
        return f"{target.label} nodes cannot have incoming connections"
    if target.node_type == NodeType.ENTRY and source.node_type not in ENTRY_SOURCES:
        return "Entry nodes can only receive connections from Signal, Start or Re-Entry nodes"
    if source.node_type in ORDER_TYPES and target.node_type in ORDER_TYPES:
        return "Order nodes cannot directly link to each other"
    return None


def can_connect(source_type: NodeType, target_type: NodeType) -> bool:
    return connection_error(source_type, target_type) is None


def check_connection(source_type: NodeType, target_type: NodeType) -> None:
    reason = connection_error(source_type, target_type)
    if reason is not None:
        raise ValidationError(f"Invalid connection: {reason}.")


_NODE_NUMBER = re.compile(r"-(\d+)$")


def node_number(node_id: str) -> str:
    match = _NODE_NUMBER.search(node_id)
    return match.group(1) if match else "1"


def next_node_id(existing: Iterable[Node], node_type: NodeType) -> str:
    """Next `<prefix>-<n>` id; numbers only ever grow, they are never reused."""

    prefix = get_spec(node_type).id_prefix
    highest = 0
    for node in existing:
        if node.id.startswith(f"{prefix}-"):
            match = _NODE_NUMBER.search(node.id)
            if match and node.id == f"{prefix}-{match.group(1)}":
                highest = max(highest, int(match.group(1)))
    return f"{prefix}-{highest + 1}"


_EXTRA_DEFAULTS: Dict[NodeType, Callable[[str], Dict[str, Any]]] = {
    NodeType.START: lambda node_id: {
        "timeframe": "5MIN",
        "exchange": "NSE",
        "symbol": "NIFTY",
        "tradingInstrument": {"type": "options", "underlyingType": "index"},
        "indicators": {},
    },
    NodeType.ENTRY: lambda node_id: {"positions": [default_position(node_id)]},
}


def create_node(node_type: NodeType | str, node_id: str, position: Optional[Dict[str, float]] = None) -> Node:
    """Build a node with the default data record of its kind."""

    spec = get_spec(node_type)
    label = f"{spec.label} {node_number(node_id)}" if spec.numbered_label else spec.label
    data: Dict[str, Any] = {"label": label, "lastUpdated": now_ms()}
    if spec.action_type:
        data["actionType"] = spec.action_type
    if issubclass(spec.data_model, ConditionNodeData):
        data["conditions"] = [create_root_group().to_wire()]
    extra = _EXTRA_DEFAULTS.get(spec.node_type)
    if extra is not None:
        data.update(extra(node_id))
    if spec.node_type == NodeType.STRATEGY_OVERVIEW:
        data.update({"isVirtual": True, "isStrategyOverview": True})
    return Node(
        id=node_id,
        type=spec.node_type,
        position=XYPosition(**(position or {})),
        data=spec.data_model.model_validate(data),
    )


def catalog() -> List[Dict[str, Any]]:
    """Serializable description of every node kind."""

    return [
        {
            "type": spec.node_type.value,
            "role": spec.role.value,
            "label": spec.label,
            "actionType": spec.action_type,
            "acceptsIncoming": spec.accepts_incoming,
            "acceptsOutgoing": spec.accepts_outgoing,
            "description": spec.description,
        }
        for spec in NODE_REGISTRY.values()
    ]


__all__ = [
    "NodeRole",
    "NodeKindSpec",
    "NODE_REGISTRY",
    "get_spec",
    "role_of",
    "connection_error",
    "can_connect",
    "check_connection",
    "node_number",
    "next_node_id",
    "create_node",
    "catalog",
]
