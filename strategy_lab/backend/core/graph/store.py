"""Authoritative in-memory node/edge collection with snapshot undo/redo."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from strategy_lab.backend.core.base_models import to_wire_keys
from strategy_lab.backend.core.errors import ConflictError, ValidationError
from strategy_lab.backend.core.graph.models import (
    DATA_MODELS,
    VIRTUAL_OVERVIEW_NODE_ID,
    Edge,
    GlobalVariable,
    Node,
    NodeData,
    NodeType,
    OverviewNodeData,
    now_ms,
)
from strategy_lab.backend.core.graph.registry import check_connection
from strategy_lab.backend.settings import get_settings

logger = logging.getLogger(__name__)

NodeLike = Union[Node, Mapping[str, Any]]
EdgeLike = Union[Edge, Mapping[str, Any]]


@dataclass
class HistoryEntry:
    nodes: List[Node]
    edges: List[Edge]


@dataclass
class MutationEvent:
    """Describes one committed store mutation to listeners."""

    kind: str
    node_ids: Tuple[str, ...] = ()
    node_types: Tuple[NodeType, ...] = ()
    edges_changed: bool = False
    extra: dict = field(default_factory=dict)


MutationListener = Callable[[MutationEvent], None]


def _coerce_node(node: NodeLike) -> Node:
    return node if isinstance(node, Node) else Node.model_validate(node)


def _coerce_edge(edge: EdgeLike) -> Edge:
    return edge if isinstance(edge, Edge) else Edge.model_validate(edge)


def _deep_nodes(nodes: Iterable[Node]) -> List[Node]:
    return [node.model_copy(deep=True) for node in nodes]


def _deep_edges(edges: Iterable[Edge]) -> List[Edge]:
    return [edge.model_copy(deep=True) for edge in edges]


class GraphStore:
    """
    Owns the nodes, edges and global variables of the strategy being edited.

    History entries are full deep copies of the post-mutation state. A new
    entry recorded after an undo discards the redo branch, and the oldest
    entries are dropped once `history_limit` is reached.
    """

    def __init__(self, history_limit: Optional[int] = None) -> None:
        self.history_limit = history_limit or get_settings().history_limit
        self.nodes: List[Node] = []
        self.edges: List[Edge] = []
        self.global_variables: List[GlobalVariable] = []
        self.history: List[HistoryEntry] = []
        self.history_index = -1
        self._listeners: List[MutationListener] = []

    # listeners

    def subscribe(self, listener: MutationListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: MutationEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    # lookups

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def require_node(self, node_id: str) -> Node:
        node = self.get_node(node_id)
        if node is None:
            raise ValidationError(f"Unknown node '{node_id}'.")
        return node

    def nodes_of_type(self, *node_types: NodeType) -> List[Node]:
        return [node for node in self.nodes if node.type in node_types]

    def edges_from(self, node_id: str) -> List[Edge]:
        return [edge for edge in self.edges if edge.source == node_id]

    def get_exportable_nodes(self) -> List[Node]:
        """Nodes without the virtual overview marker."""

        return [node for node in self.nodes if not node.is_virtual]

    # raw setters

    def set_nodes(self, nodes: Iterable[NodeLike]) -> None:
        self.nodes = [_coerce_node(node) for node in nodes]
        self._notify(MutationEvent(kind="nodes", node_ids=tuple(n.id for n in self.nodes), node_types=tuple(n.type for n in self.nodes)))

    def set_edges(self, edges: Iterable[EdgeLike], force: bool = False) -> bool:
        """
        Replace the edge set.

        An empty edge set that would strip edges from non-start, non-virtual
        nodes is treated as a transient hydration state and refused unless
        `force` is given.
        """

        new_edges = [_coerce_edge(edge) for edge in edges]
        if not new_edges and not force and self._has_guarded_edges():
            logger.warning("Refusing to clear edges | edges=%d nodes=%d", len(self.edges), len(self.nodes))
            return False
        self.edges = new_edges
        self._notify(MutationEvent(kind="edges", edges_changed=True))
        return True

    def _has_guarded_edges(self) -> bool:
        guarded = {
            node.id for node in self.nodes if node.type != NodeType.START and not node.is_virtual
        }
        return any(edge.source in guarded or edge.target in guarded for edge in self.edges)

    def set_global_variables(self, variables: Iterable[Union[GlobalVariable, Mapping[str, Any]]]) -> None:
        self.global_variables = [
            variable if isinstance(variable, GlobalVariable) else GlobalVariable.model_validate(variable)
            for variable in variables
        ]
        self._notify(MutationEvent(kind="global_variables"))

    def commit(
        self,
        nodes: Optional[Iterable[NodeLike]] = None,
        edges: Optional[Iterable[EdgeLike]] = None,
        record_history: bool = True,
    ) -> None:
        """Apply a node and edge replacement together, then record one history entry."""

        new_nodes = [_coerce_node(node) for node in nodes] if nodes is not None else self.nodes
        new_edges = [_coerce_edge(edge) for edge in edges] if edges is not None else self.edges
        self.nodes = new_nodes
        self.edges = new_edges
        self._notify(
            MutationEvent(
                kind="commit",
                node_ids=tuple(n.id for n in new_nodes),
                node_types=tuple(n.type for n in new_nodes),
                edges_changed=edges is not None,
            )
        )
        if record_history:
            self.add_history_item()

    # history

    def add_history_item(
        self,
        nodes: Optional[Sequence[NodeLike]] = None,
        edges: Optional[Sequence[EdgeLike]] = None,
    ) -> None:
        """Record a snapshot of the given (or current exportable) state."""

        snapshot_nodes = [_coerce_node(n) for n in nodes] if nodes is not None else self.get_exportable_nodes()
        snapshot_edges = [_coerce_edge(e) for e in edges] if edges is not None else self.edges
        entry = HistoryEntry(nodes=_deep_nodes(snapshot_nodes), edges=_deep_edges(snapshot_edges))

        self.history = self.history[: self.history_index + 1]
        self.history.append(entry)
        overflow = len(self.history) - self.history_limit
        if overflow > 0:
            self.history = self.history[overflow:]
        self.history_index = len(self.history) - 1

    @property
    def can_undo(self) -> bool:
        return self.history_index > 0

    @property
    def can_redo(self) -> bool:
        return self.history_index < len(self.history) - 1

    def undo(self) -> bool:
        if not self.can_undo:
            return False
        self.history_index -= 1
        self._restore(self.history[self.history_index])
        return True

    def redo(self) -> bool:
        if not self.can_redo:
            return False
        self.history_index += 1
        self._restore(self.history[self.history_index])
        return True

    def reset_history(self) -> None:
        self.history = []
        self.history_index = -1

    def _restore(self, entry: HistoryEntry) -> None:
        overview = [node for node in self.nodes if node.is_virtual]
        self.nodes = _deep_nodes(entry.nodes) + overview
        self.edges = _deep_edges(entry.edges)
        self._notify(
            MutationEvent(
                kind="restore",
                node_ids=tuple(n.id for n in self.nodes),
                node_types=tuple(n.type for n in self.nodes),
                edges_changed=True,
            )
        )

    # node mutations

    def merged_node(self, node_id: str, partial: Mapping[str, Any]) -> Node:
        """Return a copy of the node with `partial` merged into its data; the store is not touched."""

        node = self.require_node(node_id)
        merged = node.data.to_wire()
        merged.update(to_wire_keys(partial))
        merged.pop("_lastUpdated", None)
        merged["lastUpdated"] = max(now_ms(), node.data.last_updated + 1)
        try:
            data = DATA_MODELS[node.type].model_validate(merged)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid data for node '{node_id}': {exc.errors()[0]['msg']}") from exc
        return node.model_copy(update={"data": data})

    def update_node_data(self, node_id: str, partial: Mapping[str, Any], record_history: bool = False) -> Node:
        """
        Merge `partial` into the node's data and stamp `lastUpdated`.

        Sibling fields are preserved. The stamp is strictly greater than the
        previous one even when two updates land in the same millisecond.
        Listeners run before the history entry is taken, so whatever they
        derive from this change is part of the same undo step.
        """

        node = self.require_node(node_id)
        updated = self.merged_node(node_id, partial)
        self.nodes = [updated if candidate.id == node_id else candidate for candidate in self.nodes]
        self._notify(
            MutationEvent(kind="node_data", node_ids=(node_id,), node_types=(node.type,), extra={"keys": tuple(partial)})
        )
        if record_history:
            self.add_history_item()
        return updated

    def add_node(self, node: NodeLike, record_history: bool = True) -> Node:
        candidate = _coerce_node(node)
        if self.get_node(candidate.id) is not None:
            raise ConflictError(f"A node with id '{candidate.id}' already exists.")
        if candidate.type == NodeType.START and self.nodes_of_type(NodeType.START):
            raise ValidationError("A strategy can only have one start node.")
        self.nodes = [*self.nodes, candidate]
        self._notify(MutationEvent(kind="add_node", node_ids=(candidate.id,), node_types=(candidate.type,)))
        if record_history:
            self.add_history_item()
        return candidate

    def remove_node(self, node_id: str, record_history: bool = True) -> Node:
        """Remove a node together with every edge touching it."""

        node = self.require_node(node_id)
        self.nodes = [candidate for candidate in self.nodes if candidate.id != node_id]
        self.edges = [edge for edge in self.edges if edge.source != node_id and edge.target != node_id]
        self._notify(
            MutationEvent(kind="remove_node", node_ids=(node_id,), node_types=(node.type,), edges_changed=True)
        )
        if record_history:
            self.add_history_item()
        return node

    # edge mutations

    def add_edge(self, edge: EdgeLike, record_history: bool = True) -> Edge:
        candidate = _coerce_edge(edge)
        source = self.require_node(candidate.source)
        target = self.require_node(candidate.target)
        check_connection(source.type, target.type)
        if any(existing.id == candidate.id for existing in self.edges):
            raise ConflictError(f"An edge with id '{candidate.id}' already exists.")
        self.edges = [*self.edges, candidate]
        self._notify(MutationEvent(kind="add_edge", node_ids=(source.id, target.id), edges_changed=True))
        if record_history:
            self.add_history_item()
        return candidate

    def remove_edges_from(self, node_id: str) -> List[Edge]:
        removed = self.edges_from(node_id)
        if removed:
            self.edges = [edge for edge in self.edges if edge.source != node_id]
            self._notify(MutationEvent(kind="edges", node_ids=(node_id,), edges_changed=True))
        return removed

    # global variables

    def add_global_variable(self, variable: Union[GlobalVariable, Mapping[str, Any]]) -> GlobalVariable:
        candidate = variable if isinstance(variable, GlobalVariable) else GlobalVariable.model_validate(variable)
        if any(existing.name == candidate.name for existing in self.global_variables):
            raise ConflictError(f"A global variable named '{candidate.name}' already exists.")
        self.global_variables = [*self.global_variables, candidate]
        self._notify(MutationEvent(kind="global_variables"))
        return candidate

    def remove_global_variable(self, variable_id: str) -> None:
        """Delete a global variable and every assignment that targets it."""

        self.global_variables = [v for v in self.global_variables if v.id != variable_id]
        for node in list(self.nodes):
            updates = getattr(node.data, "global_variable_updates", None)
            if updates and any(update.global_variable_id == variable_id for update in updates):
                remaining = [u for u in updates if u.global_variable_id != variable_id]
                self.update_node_data(node.id, {"globalVariableUpdates": [u.to_wire() for u in remaining]})
        self._notify(MutationEvent(kind="global_variables"))

    # strategy overview marker

    def cleanup_overview_nodes(self) -> None:
        overview = [node for node in self.nodes if node.type == NodeType.STRATEGY_OVERVIEW]
        if len(overview) > 1:
            keep = overview[0].id
            self.nodes = [n for n in self.nodes if n.type != NodeType.STRATEGY_OVERVIEW or n.id == keep]
            logger.info("Removed duplicate overview nodes | count=%d", len(overview) - 1)

    def ensure_overview_node(self) -> Node:
        """Return the single virtual overview node, creating it without a history entry."""

        self.cleanup_overview_nodes()
        for node in self.nodes:
            if node.type == NodeType.STRATEGY_OVERVIEW:
                return node
        overview = Node(
            id=VIRTUAL_OVERVIEW_NODE_ID,
            type=NodeType.STRATEGY_OVERVIEW,
            data=OverviewNodeData(label="Strategy Overview", last_updated=now_ms()),
        )
        self.nodes = [*self.nodes, overview]
        return overview

    # snapshots for persistence

    def snapshot(self) -> Tuple[List[Node], List[Edge], List[GlobalVariable]]:
        return (
            _deep_nodes(self.get_exportable_nodes()),
            _deep_edges(self.edges),
            [variable.model_copy(deep=True) for variable in self.global_variables],
        )

    def node_data(self, node_id: str) -> NodeData:
        return self.require_node(node_id).data


__all__ = ["HistoryEntry", "MutationEvent", "MutationListener", "GraphStore"]
