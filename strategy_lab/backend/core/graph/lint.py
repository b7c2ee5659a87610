"""Structural checks for strategy graphs that go beyond per-mutation validation."""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from strategy_lab.backend.core.errors import ValidationError
from strategy_lab.backend.core.graph.models import Edge, Node, NodeType
from strategy_lab.backend.core.graph.registry import connection_error


class LintIssue(BaseModel):
    """One finding; `severity` is ``error`` for graphs the backend cannot run."""

    code: str
    message: str
    severity: str = "error"
    node_id: Optional[str] = None
    edge_id: Optional[str] = None


NodeInput = Union[Node, Mapping[str, Any]]
EdgeInput = Union[Edge, Mapping[str, Any]]


class GraphLinter:
    """Validates a node/edge snapshot and reports every issue found."""

    def lint(self, nodes: Iterable[NodeInput], edges: Iterable[EdgeInput]) -> List[LintIssue]:
        try:
            node_list = [node if isinstance(node, Node) else Node.model_validate(node) for node in nodes]
            edge_list = [edge if isinstance(edge, Edge) else Edge.model_validate(edge) for edge in edges]
        except PydanticValidationError as exc:
            raise ValidationError(f"Graph cannot be linted: {exc.errors()[0]['msg']}") from exc
        real_nodes = [node for node in node_list if not node.is_virtual]
        node_map: Dict[str, Node] = {node.id: node for node in real_nodes}

        issues: List[LintIssue] = []
        issues.extend(self._check_start(real_nodes))
        issues.extend(self._check_edges(node_map, edge_list))
        issues.extend(self._check_reachability(real_nodes, node_map, edge_list))
        issues.extend(self._check_reentry(real_nodes, edge_list))
        issues.extend(self._check_vpis(real_nodes))
        return issues

    def is_valid(self, nodes: Iterable[NodeInput], edges: Iterable[EdgeInput]) -> bool:
        return not any(issue.severity == "error" for issue in self.lint(nodes, edges))

    def _check_start(self, nodes: List[Node]) -> List[LintIssue]:
        starts = [node for node in nodes if node.type == NodeType.START]
        if not starts:
            return [LintIssue(code="missing_start", message="Strategy has no start node.")]
        return [
            LintIssue(code="multiple_start", message=f"Extra start node '{node.id}'.", node_id=node.id)
            for node in starts[1:]
        ]

    def _check_edges(self, node_map: Dict[str, Node], edges: List[Edge]) -> List[LintIssue]:
        issues: List[LintIssue] = []
        for edge in edges:
            missing = [endpoint for endpoint in (edge.source, edge.target) if endpoint not in node_map]
            if missing:
                issues.append(
                    LintIssue(
                        code="dangling_edge",
                        message=f"Edge '{edge.id}' references missing node '{missing[0]}'.",
                        edge_id=edge.id,
                    )
                )
                continue
            reason = connection_error(node_map[edge.source].type, node_map[edge.target].type)
            if reason is not None:
                issues.append(
                    LintIssue(code="invalid_connection", message=f"{reason}.", edge_id=edge.id, node_id=edge.source)
                )
        return issues

    def _check_reachability(self, nodes: List[Node], node_map: Dict[str, Node], edges: List[Edge]) -> List[LintIssue]:
        adjacency: Dict[str, List[str]] = defaultdict(list)
        touched: Set[str] = set()
        for edge in edges:
            if edge.source in node_map and edge.target in node_map:
                adjacency[edge.source].append(edge.target)
                touched.update((edge.source, edge.target))

        start_ids = [node.id for node in nodes if node.type == NodeType.START]
        reachable: Set[str] = set(start_ids)
        queue = deque(start_ids)
        while queue:
            current = queue.popleft()
            for neighbor in adjacency[current]:
                if neighbor not in reachable:
                    reachable.add(neighbor)
                    queue.append(neighbor)

        issues: List[LintIssue] = []
        for node in nodes:
            if node.type == NodeType.START:
                continue
            if node.id not in touched:
                issues.append(
                    LintIssue(code="orphan_node", message=f"Node '{node.id}' has no connections.", severity="warning", node_id=node.id)
                )
            elif start_ids and node.id not in reachable:
                issues.append(
                    LintIssue(code="unreachable_node", message=f"Node '{node.id}' cannot be reached from start.", node_id=node.id)
                )
        return issues

    def _check_reentry(self, nodes: List[Node], edges: List[Edge]) -> List[LintIssue]:
        has_entries = any(node.type == NodeType.ENTRY for node in nodes)
        issues: List[LintIssue] = []
        for node in nodes:
            if node.type != NodeType.REENTRY_SIGNAL:
                continue
            outgoing = [edge for edge in edges if edge.source == node.id]
            if len(outgoing) > 1:
                issues.append(
                    LintIssue(
                        code="reentry_multiple_edges",
                        message=f"Re-entry node '{node.id}' has {len(outgoing)} outgoing edges; expected at most one.",
                        node_id=node.id,
                    )
                )
            if has_entries and not node.data.target_entry_node_id:
                issues.append(
                    LintIssue(
                        code="reentry_target_required",
                        message=f"Re-entry node '{node.id}' has no target entry node.",
                        severity="warning",
                        node_id=node.id,
                    )
                )
        return issues

    def _check_vpis(self, nodes: List[Node]) -> List[LintIssue]:
        owners: Dict[str, str] = {}
        issues: List[LintIssue] = []
        for node in nodes:
            for position in getattr(node.data, "positions", None) or []:
                if not position.vpi:
                    continue
                if position.vpi in owners:
                    issues.append(
                        LintIssue(
                            code="duplicate_vpi",
                            message=f"Position id '{position.vpi}' is used by '{owners[position.vpi]}' and '{node.id}'.",
                            node_id=node.id,
                        )
                    )
                else:
                    owners[position.vpi] = node.id
        return issues


__all__ = ["LintIssue", "GraphLinter"]
