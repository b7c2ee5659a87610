"""Serializer for strategy documents into a readable YAML DSL."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import yaml

from strategy_lab.backend.core.conditions.rendering import RenderContext, conditions_preview
from strategy_lab.backend.core.graph.models import Node, StrategyDocument


class StrategyDslSerializer:
    """Transform strategy documents into DSL representations for inspection."""

    VERSION = 1

    def to_dict(self, document: StrategyDocument) -> Dict[str, Any]:
        """Return a stable DSL representation as a dictionary."""

        context = RenderContext.from_graph(
            [node.to_wire() for node in document.nodes],
            [variable.to_wire() for variable in document.global_variables],
        )
        return {
            "version": self.VERSION,
            "id": document.id,
            "name": document.name,
            "description": document.description,
            "nodes": [self._node(node, context) for node in document.nodes if not node.is_virtual],
            "edges": [{"id": edge.id, "from": edge.source, "to": edge.target} for edge in document.edges],
            "globalVariables": [variable.name for variable in document.global_variables],
        }

    def to_yaml(self, document: StrategyDocument) -> str:
        """Return a YAML string for the DSL representation."""

        return yaml.safe_dump(self.to_dict(document), sort_keys=False)

    def _node(self, node: Node, context: RenderContext) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"id": node.id, "type": node.type.value, "label": node.data.label}
        conditions: Optional[Iterable[Any]] = getattr(node.data, "conditions", None)
        if conditions is not None:
            entry["when"] = conditions_preview(list(conditions), context)
        positions = getattr(node.data, "positions", None)
        if positions:
            entry["positions"] = [
                {"vpi": p.vpi, "side": p.position_type, "quantity": p.quantity, "maxEntries": p.max_entries}
                for p in positions
            ]
        target = getattr(node.data, "target_entry_node_id", None)
        if target:
            entry["reEntryTarget"] = target
        return entry


__all__ = ["StrategyDslSerializer"]
