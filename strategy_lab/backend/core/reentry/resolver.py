"""Keeps re-entry-signal nodes linked to, and mirrored from, their target entry node."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional

from strategy_lab.backend.core.errors import ValidationError
from strategy_lab.backend.core.graph.models import Edge, Node, NodeType
from strategy_lab.backend.core.signals import SignalBus, SignalType

if TYPE_CHECKING:
    from strategy_lab.backend.core.graph.store import GraphStore, MutationEvent

logger = logging.getLogger(__name__)

NO_TARGET = "none"


def reentry_edge_id(node_id: str, target_id: str) -> str:
    return f"e-{node_id}-{target_id}"


def target_max_entries(target: Optional[Node]) -> int:
    """`maxEntries` of the first position on `target`, or 1."""

    if target is None:
        return 1
    positions = getattr(target.data, "positions", None) or []
    if not positions:
        return 1
    return positions[0].max_entries or 1


class ReEntryLinkResolver:
    """
    Maintains two invariants for every re-entry-signal node:

    * ``retryConfig.maxEntries`` equals ``maxEntries`` of the first position of
      the selected entry node (1 when nothing is selected);
    * the node has exactly one outgoing edge, to its target, or none at all.

    The resolver subscribes to the store so edits made to an entry node by any
    editor are mirrored immediately.
    """

    def __init__(self, store: "GraphStore", signals: Optional[SignalBus] = None, auto_sync: bool = True) -> None:
        self.store = store
        self.signals = signals or SignalBus()
        self._syncing = False
        self._unsubscribe = store.subscribe(self._on_mutation) if auto_sync else None

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def entry_nodes(self) -> List[Node]:
        return self.store.nodes_of_type(NodeType.ENTRY)

    def select_target(self, node_id: str, target_id: Optional[str], record_history: bool = True) -> Node:
        """
        Point a re-entry-signal node at an entry node, or at nothing.

        Data and edges are committed together and recorded as one history
        entry; the rendering layer is then asked to refresh its edges.
        """

        node = self.store.require_node(node_id)
        if node.type != NodeType.REENTRY_SIGNAL:
            raise ValidationError(f"Node '{node_id}' is not a re-entry signal node.")

        resolved = None if target_id in (None, "", NO_TARGET) else target_id
        target = None
        if resolved is not None:
            target = self.store.get_node(resolved)
            if target is None or target.type != NodeType.ENTRY:
                raise ValidationError(f"Re-entry target '{resolved}' is not an entry node.")

        retry_config = node.data.retry_config.to_wire()
        retry_config["maxEntries"] = target_max_entries(target)
        updated = self.store.merged_node(node_id, {"targetEntryNodeId": resolved, "retryConfig": retry_config})

        edges = [edge for edge in self.store.edges if edge.source != node_id]
        if resolved is not None:
            edges.append(Edge(id=reentry_edge_id(node_id, resolved), source=node_id, target=resolved, animated=True))
        nodes = [updated if candidate.id == node_id else candidate for candidate in self.store.nodes]

        previous, self._syncing = self._syncing, True
        try:
            self.store.commit(nodes, edges, record_history=record_history)
        finally:
            self._syncing = previous

        logger.info("Re-entry target selected | node=%s target=%s", node_id, resolved or NO_TARGET)
        self.signals.emit(SignalType.FORCE_EDGE_UPDATE, edges=[edge.to_wire() for edge in edges])
        return updated

    def resync(self) -> int:
        """
        Re-mirror every linked re-entry-signal node; returns how many changed.

        Nodes whose target disappeared are unlinked along with their edge.
        """

        changed = 0
        self._syncing = True
        try:
            for node in self.store.nodes_of_type(NodeType.REENTRY_SIGNAL):
                target_id = node.data.target_entry_node_id
                if not target_id:
                    continue
                target = self.store.get_node(target_id)
                if target is None or target.type != NodeType.ENTRY:
                    logger.warning("Re-entry target vanished | node=%s target=%s", node.id, target_id)
                    self.select_target(node.id, None, record_history=False)
                    changed += 1
                    continue
                expected = target_max_entries(target)
                if node.data.retry_config.max_entries != expected:
                    retry_config = node.data.retry_config.to_wire()
                    retry_config["maxEntries"] = expected
                    self.store.update_node_data(node.id, {"retryConfig": retry_config})
                    changed += 1
        finally:
            self._syncing = False
        return changed

    def target_warning(self, node_id: str) -> bool:
        """True when entry nodes exist but this node has no target selected."""

        node = self.store.require_node(node_id)
        target = getattr(node.data, "target_entry_node_id", None)
        return bool(self.entry_nodes()) and target in (None, "", NO_TARGET)

    def _on_mutation(self, event: "MutationEvent") -> None:
        if self._syncing:
            return
        if NodeType.ENTRY in event.node_types or event.kind in ("remove_node", "restore", "nodes", "commit"):
            self.resync()


__all__ = ["NO_TARGET", "reentry_edge_id", "target_max_entries", "ReEntryLinkResolver"]
