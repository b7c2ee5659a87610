"""Forward migrations applied to stored and imported strategy documents."""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Any, Dict, Mapping, Optional, Tuple

from strategy_lab.backend.core.conditions.factories import new_condition_id
from strategy_lab.backend.core.graph.models import NodeType

logger = logging.getLogger(__name__)

LEGACY_EXPRESSION_KINDS = {"market_data": "candle_data"}
POST_EXECUTION_FEATURES = ("stopLoss", "trailingStop", "takeProfit")


def migrate_expression_kinds(value: Any) -> Any:
    """Rename legacy expression kinds anywhere inside a JSON value; returns a new value."""

    if isinstance(value, list):
        return [migrate_expression_kinds(item) for item in value]
    if isinstance(value, dict):
        migrated = {key: migrate_expression_kinds(item) for key, item in value.items()}
        kind = migrated.get("type")
        if isinstance(kind, str) and kind in LEGACY_EXPRESSION_KINDS:
            migrated["type"] = LEGACY_EXPRESSION_KINDS[kind]
        return migrated
    return value


def _rename_max_reentries(config: Any) -> None:
    if isinstance(config, dict) and "maxReEntries" in config:
        value = config.pop("maxReEntries")
        config.setdefault("maxEntries", value)


def migrate_max_entries(document: Dict[str, Any]) -> Dict[str, Any]:
    """Rename ``maxReEntries`` to ``maxEntries`` and default positions to one entry."""

    migrated = copy.deepcopy(document)
    for node in migrated.get("nodes") or []:
        data = node.get("data") if isinstance(node, dict) else None
        if not isinstance(data, dict):
            continue
        for position in data.get("positions") or []:
            if not isinstance(position, dict):
                continue
            position.setdefault("maxEntries", 1)
            _rename_max_reentries(position.get("reEntry"))
        _rename_max_reentries(data.get("retryConfig"))
        _rename_max_reentries(data.get("reEntryConfig"))
        post_execution = (data.get("exitNodeData") or {}).get("postExecutionConfig")
        if isinstance(post_execution, dict):
            for feature in POST_EXECUTION_FEATURES:
                _rename_max_reentries((post_execution.get(feature) or {}).get("reEntry"))
    return migrated


def _migrate_condition(item: Any) -> Any:
    if not isinstance(item, dict):
        return item
    if "conditions" in item or "groupLogic" in item:
        return {**item, "conditions": [_migrate_condition(child) for child in item.get("conditions") or []]}
    if "expressionA" not in item and "expressionB" not in item:
        return item
    migrated = {key: value for key, value in item.items() if key not in ("expressionA", "expressionB")}
    migrated["id"] = item.get("id") or new_condition_id()
    migrated["operator"] = item.get("operator") or ">"
    migrated["lhs"] = item.get("lhs") or item.get("expressionA")
    migrated["rhs"] = item.get("rhs") or item.get("expressionB")
    return migrated


def migrate_legacy_conditions(document: Dict[str, Any]) -> Dict[str, Any]:
    """Rewrite ``expressionA``/``expressionB`` leaves to ``lhs``/``rhs``."""

    migrated = copy.deepcopy(document)
    for node in migrated.get("nodes") or []:
        data = node.get("data") if isinstance(node, dict) else None
        if not isinstance(data, dict):
            continue
        for key, value in list(data.items()):
            if key.endswith("onditions") and isinstance(value, list):
                data[key] = [_migrate_condition(item) for item in value]
    return migrated


def indicator_display_name(name: str, parameters: Optional[Mapping[str, Any]]) -> str:
    """``rsi_1`` with ``{period: 14, source: close}`` renders as ``rsi(14,close)``."""

    base = name.split("_")[0]
    values = [str(value) for key, value in (parameters or {}).items() if key not in ("indicator_name", "display_name")]
    return f"{base}({','.join(values)})"


def _keyed_indicators(entries: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
    keyed: Dict[str, Dict[str, Any]] = {}
    for key, parameters in entries.items():
        if not isinstance(parameters, dict):
            continue
        name = str(parameters.get("indicator_name") or key.split("_")[0])
        keyed[str(uuid.uuid4())] = {
            "display_name": indicator_display_name(name, parameters),
            "indicator_name": name,
            **parameters,
        }
    return keyed


def migrate_start_indicators(document: Dict[str, Any]) -> Dict[str, Any]:
    """
    Re-key start node indicators by fresh ids and give each a display name.

    The old form listed indicator keys in ``indicators`` and kept their
    settings in ``indicatorParameters``; the current form is a mapping of id
    to ``{display_name, indicator_name, **parameters}``. Mappings whose
    entries already carry a ``display_name`` are left alone.
    """

    migrated = copy.deepcopy(document)
    for node in migrated.get("nodes") or []:
        if not isinstance(node, dict) or node.get("type") != NodeType.START.value:
            continue
        data = node.get("data")
        if not isinstance(data, dict):
            continue
        indicators = data.get("indicators")
        if isinstance(indicators, list):
            parameters = data.pop("indicatorParameters", None)
            data["indicators"] = _keyed_indicators(parameters) if isinstance(parameters, dict) else {}
        elif isinstance(indicators, dict):
            first = next(iter(indicators.values()), None)
            if isinstance(first, dict) and not first.get("display_name"):
                data["indicators"] = _keyed_indicators(indicators)
    return migrated


def migrate_document(document: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
    """Apply every migration; returns the migrated copy and whether anything changed."""

    migrated = migrate_expression_kinds(document)
    migrated = migrate_max_entries(migrated)
    migrated = migrate_legacy_conditions(migrated)
    migrated = migrate_start_indicators(migrated)
    changed = migrated != document
    if changed:
        logger.info("Strategy document migrated | id=%s", document.get("id"))
    return migrated, changed


__all__ = [
    "LEGACY_EXPRESSION_KINDS",
    "migrate_expression_kinds",
    "migrate_max_entries",
    "migrate_legacy_conditions",
    "indicator_display_name",
    "migrate_start_indicators",
    "migrate_document",
]
