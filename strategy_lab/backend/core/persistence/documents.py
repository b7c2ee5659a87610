"""Validation, export enrichment and re-identification of strategy documents."""

from __future__ import annotations

import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from strategy_lab.backend.core.conditions.rendering import RenderContext, conditions_preview, expression_to_string, is_sentinel
from strategy_lab.backend.core.errors import ValidationError
from strategy_lab.backend.core.graph.models import Edge, GlobalVariable, Node, StrategyDocument
from strategy_lab.backend.core.persistence.migration import indicator_display_name

logger = logging.getLogger(__name__)

DEFAULT_IMPORT_NAME = "Imported Strategy"
DEFAULT_IMPORT_DESCRIPTION = "Imported strategy"

CONDITION_PREVIEW_KEYS = ("conditions", "entryConditions", "exitConditions", "reEntryConditions", "reEntryExitConditions")
EXPRESSION_PREVIEW_KEYS = ("expression", "targetExpression", "stopLossExpression", "takeProfitExpression")
INDICATOR_NAMES_KEY = "indicatorNames"
ENRICHMENT_KEY = "exportEnrichment"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def validate_document(raw: Any) -> StrategyDocument:
    """
    Check the structure of a decoded document and parse it.

    Every node needs ``id``, ``type`` and ``position``; every edge needs
    ``id``, ``source`` and ``target`` and both endpoints must exist. Any
    failure rejects the whole document.
    """

    if not isinstance(raw, Mapping):
        raise ValidationError("Invalid file format.")
    nodes = raw.get("nodes")
    edges = raw.get("edges")
    if not isinstance(nodes, list) or not isinstance(edges, list):
        raise ValidationError("Invalid strategy data: missing nodes or edges.")
    if not all(isinstance(node, Mapping) and node.get("id") and node.get("type") and node.get("position") for node in nodes):
        raise ValidationError("Invalid node structure in imported data.")
    if not all(isinstance(edge, Mapping) and edge.get("id") and edge.get("source") and edge.get("target") for edge in edges):
        raise ValidationError("Invalid edge structure in imported data.")

    node_ids = {node["id"] for node in nodes}
    dangling = [edge["id"] for edge in edges if edge["source"] not in node_ids or edge["target"] not in node_ids]
    if dangling:
        raise ValidationError(f"Invalid edge structure in imported data: edge '{dangling[0]}' references a missing node.")

    payload = dict(raw)
    payload.setdefault("id", "")
    try:
        return StrategyDocument.model_validate(payload)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(f"Invalid strategy data at {location}: {first['msg']}") from exc


def _derived_node_fields(data: Mapping[str, Any], context: RenderContext) -> Dict[str, Any]:
    derived: Dict[str, Any] = {}
    for key in CONDITION_PREVIEW_KEYS:
        groups = data.get(key)
        if isinstance(groups, list):
            preview = conditions_preview(groups, context)
            if preview:
                derived[f"{key}Preview"] = preview
    for key in EXPRESSION_PREVIEW_KEYS:
        expression = data.get(key)
        if expression:
            preview = expression_to_string(expression, context)
            if preview and not is_sentinel(preview):
                derived[f"{key}Preview"] = preview
    indicators = data.get("indicators")
    if isinstance(indicators, Mapping) and indicators:
        derived[INDICATOR_NAMES_KEY] = [
            str(meta.get("display_name") or indicator_display_name(str(meta.get("indicator_name") or key), meta))
            for key, meta in indicators.items()
            if isinstance(meta, Mapping)
        ]
    return derived


def build_export_document(
    document: StrategyDocument,
    user_id: Optional[str] = None,
    include_previews: bool = True,
) -> Dict[str, Any]:
    """
    Wire form of a document ready for export.

    The virtual overview node is dropped, provenance (``userId`` and
    ``strategyId``) is stamped and, optionally, human-readable previews are
    added next to every condition list and expression. Only fields a node
    does not already hold are added, and their names are listed per node
    under ``exportEnrichment`` so an import can take them off again.
    """

    wire = document.to_wire()
    wire["nodes"] = [node.to_wire() for node in document.nodes if not node.is_virtual]
    wire["userId"] = user_id
    wire["strategyId"] = document.id
    if include_previews:
        context = RenderContext.from_graph(wire["nodes"], wire.get("globalVariables") or [])
        enrichment: Dict[str, List[str]] = {}
        for node in wire["nodes"]:
            data = node.get("data")
            if not isinstance(data, dict):
                continue
            added = {key: value for key, value in _derived_node_fields(data, context).items() if key not in data}
            if added:
                data.update(added)
                enrichment[node["id"]] = list(added)
        if enrichment:
            wire[ENRICHMENT_KEY] = enrichment
    logger.debug("Export document built | id=%s nodes=%d previews=%s", document.id, len(wire["nodes"]), include_previews)
    return wire


def strip_export_enrichment(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy of an exported document without the node fields its export added."""

    stripped = copy.deepcopy(dict(raw))
    enrichment = stripped.pop(ENRICHMENT_KEY, None)
    if not isinstance(enrichment, Mapping):
        return stripped
    for node in stripped.get("nodes") or []:
        if not isinstance(node, dict):
            continue
        keys = enrichment.get(node.get("id"))
        data = node.get("data")
        if isinstance(keys, list) and isinstance(data, dict):
            for key in keys:
                data.pop(key, None)
    return stripped


def document_from_parts(
    strategy_id: str,
    name: str,
    nodes: Iterable[Node],
    edges: Iterable[Edge],
    global_variables: Sequence[GlobalVariable] = (),
    created: str = "",
    description: str = "",
) -> StrategyDocument:
    return StrategyDocument(
        id=strategy_id,
        name=name,
        nodes=list(nodes),
        edges=list(edges),
        global_variables=list(global_variables),
        created=created or now_iso(),
        last_modified=now_iso(),
        description=description,
    )


def fresh_identity(document: StrategyDocument, name: Optional[str] = None) -> StrategyDocument:
    """Copy of an imported document under a new id, with new timestamps and no provenance."""

    timestamp = now_iso()
    return document.model_copy(
        update={
            "id": str(uuid.uuid4()),
            "name": name or document.name or DEFAULT_IMPORT_NAME,
            "description": document.description or DEFAULT_IMPORT_DESCRIPTION,
            "created": timestamp,
            "last_modified": timestamp,
            "user_id": None,
            "strategy_id": None,
            "nodes": copy.deepcopy(document.nodes),
            "edges": copy.deepcopy(document.edges),
        }
    )


def summary(document: StrategyDocument) -> Dict[str, Any]:
    return {
        "id": document.id,
        "name": document.name,
        "created": document.created,
        "lastModified": document.last_modified,
        "description": document.description,
    }


__all__ = [
    "DEFAULT_IMPORT_NAME",
    "now_iso",
    "validate_document",
    "indicator_display_name",
    "build_export_document",
    "strip_export_enrichment",
    "document_from_parts",
    "fresh_identity",
    "summary",
]
