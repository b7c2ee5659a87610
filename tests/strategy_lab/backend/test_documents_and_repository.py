import json
from pathlib import Path

import pytest

from strategy_lab.backend.core.errors import CorruptionError, ValidationError
from strategy_lab.backend.core.graph.models import VIRTUAL_OVERVIEW_NODE_ID, NodeType
from strategy_lab.backend.core.graph.registry import create_node
from strategy_lab.backend.core.persistence.documents import (
    DEFAULT_IMPORT_NAME,
    build_export_document,
    document_from_parts,
    fresh_identity,
    indicator_display_name,
    strip_export_enrichment,
    validate_document,
)
from strategy_lab.backend.core.persistence.repository import (
    FileKeyValueStorage,
    InMemoryKeyValueStorage,
    StrategyRepository,
    strategy_key,
)


def _raw_document() -> dict:
    return {
        "id": "s1",
        "name": "Breakout",
        "nodes": [
            {"id": "start-1", "type": "startNode", "position": {"x": 0, "y": 0}, "data": {"label": "Start"}},
            {
                "id": "signal-1",
                "type": "signalNode",
                "position": {"x": 0, "y": 100},
                "data": {
                    "label": "Signal 1",
                    "conditions": [
                        {
                            "id": "root",
                            "groupLogic": "AND",
                            "conditions": [
                                {
                                    "id": "c1",
                                    "operator": ">",
                                    "lhs": {"type": "constant", "value": 5},
                                    "rhs": {"type": "constant", "value": 3},
                                }
                            ],
                        }
                    ],
                },
            },
        ],
        "edges": [{"id": "e1", "source": "start-1", "target": "signal-1"}],
        "globalVariables": [],
    }


def _document():
    return validate_document(_raw_document())


def test_validate_document_accepts_well_formed_input() -> None:
    document = _document()
    assert document.name == "Breakout"
    assert document.nodes[1].type == NodeType.SIGNAL
    assert document.edges[0].target == "signal-1"


@pytest.mark.parametrize(
    "mutate",
    [
        lambda raw: raw.pop("nodes"),
        lambda raw: raw["nodes"][0].pop("position"),
        lambda raw: raw["edges"][0].pop("source"),
        lambda raw: raw["edges"].append({"id": "e2", "source": "start-1", "target": "ghost"}),
        lambda raw: raw["nodes"][0].update({"type": "mysteryNode"}),
    ],
)
def test_validate_document_rejects_structural_errors(mutate) -> None:
    raw = _raw_document()
    mutate(raw)
    with pytest.raises(ValidationError):
        validate_document(raw)


def test_validate_document_rejects_non_mappings() -> None:
    with pytest.raises(ValidationError):
        validate_document([1, 2, 3])


def test_export_document_adds_previews_and_drops_virtual_nodes() -> None:
    document = _document()
    overview = create_node(NodeType.STRATEGY_OVERVIEW, VIRTUAL_OVERVIEW_NODE_ID)
    document = document.model_copy(update={"nodes": [*document.nodes, overview]})

    exported = build_export_document(document, "user-1")
    assert [node["id"] for node in exported["nodes"]] == ["start-1", "signal-1"]
    assert exported["userId"] == "user-1"
    assert exported["strategyId"] == "s1"
    assert exported["nodes"][1]["data"]["conditionsPreview"] == "5 > 3"
    assert exported["exportEnrichment"] == {"signal-1": ["conditionsPreview"]}

    bare = build_export_document(document, "user-1", include_previews=False)
    assert "conditionsPreview" not in bare["nodes"][1]["data"]
    assert "exportEnrichment" not in bare


def test_stripping_export_fields_restores_original_nodes() -> None:
    raw = _raw_document()
    raw["nodes"][0]["data"]["indicators"] = {
        "id-1": {"display_name": "RSI(14)", "indicator_name": "rsi", "period": 14},
        "id-2": {"indicator_name": "ema", "period": 21},
    }
    raw["nodes"][1]["data"]["entryConditions"] = raw["nodes"][1]["data"]["conditions"]
    raw["nodes"][1]["data"]["entryConditionsPreview"] = "kept as stored"
    document = validate_document(raw)

    exported = build_export_document(document, "user-1")
    assert exported["nodes"][0]["data"]["indicatorNames"] == ["RSI(14)", "ema(21)"]
    assert exported["nodes"][1]["data"]["entryConditionsPreview"] == "kept as stored"
    assert exported["exportEnrichment"] == {"start-1": ["indicatorNames"], "signal-1": ["conditionsPreview"]}

    restored = validate_document(strip_export_enrichment(exported))
    assert restored.nodes == document.nodes
    assert "exportEnrichment" in exported


def test_indicator_display_name() -> None:
    assert indicator_display_name("rsi_1", {"period": 14, "source": "close"}) == "rsi(14,close)"
    assert indicator_display_name("ema_2", None) == "ema()"


def test_fresh_identity_replaces_id_and_clears_provenance() -> None:
    document = _document().model_copy(update={"user_id": "someone", "strategy_id": "s1", "name": ""})
    fresh = fresh_identity(document)
    assert fresh.id != "s1"
    assert fresh.user_id is None and fresh.strategy_id is None
    assert fresh.name == DEFAULT_IMPORT_NAME
    assert fresh.created == fresh.last_modified


def test_repository_round_trip_with_files(tmp_path: Path) -> None:
    repository = StrategyRepository(FileKeyValueStorage(tmp_path))
    saved = repository.save("u1", _document())
    assert saved.user_id == "u1"

    loaded = repository.load("u1", "s1")
    assert loaded is not None
    assert [node.id for node in loaded.nodes] == ["start-1", "signal-1"]
    assert repository.list("u1")[0]["name"] == "Breakout"
    assert repository.load("u1", "missing") is None

    resaved = repository.save("u1", loaded.model_copy(update={"created": "2000-01-01T00:00:00.000Z"}))
    assert resaved.created == saved.created
    assert len(repository.list("u1")) == 1

    repository.delete("u1", "s1")
    assert repository.load("u1", "s1") is None
    assert repository.list("u1") == []


def test_repository_migrates_on_load_and_writes_back_once() -> None:
    storage = InMemoryKeyValueStorage()
    raw = _raw_document()
    raw["nodes"][1]["data"]["conditions"][0]["conditions"][0] = {
        "expressionA": {"type": "market_data", "dataField": "close"},
        "expressionB": {"type": "constant", "value": 3},
    }
    storage.set(strategy_key("u1", "s1"), json.dumps(raw))
    repository = StrategyRepository(storage)

    loaded = repository.load("u1", "s1")
    leaf = loaded.nodes[1].data.conditions[0].conditions[0]
    assert leaf.lhs.type == "candle_data"
    stored_once = storage.get(strategy_key("u1", "s1"))
    assert "expressionA" not in stored_once

    repository.load("u1", "s1")
    assert storage.get(strategy_key("u1", "s1")) == stored_once


def test_repository_rejects_corrupted_json() -> None:
    storage = InMemoryKeyValueStorage()
    storage.set(strategy_key("u1", "s1"), "{broken")
    with pytest.raises(CorruptionError):
        StrategyRepository(storage).load("u1", "s1")


def test_unique_name_and_find_by_name() -> None:
    repository = StrategyRepository(InMemoryKeyValueStorage())
    repository.save("u1", _document())
    repository.save("u1", document_from_parts("s2", "Breakout (1)", [], []))

    assert repository.find_by_name("u1", "Breakout")["id"] == "s1"
    assert repository.find_by_name("u2", "Breakout") is None
    assert repository.unique_name("u1", "Breakout") == "Breakout (2)"
    assert repository.unique_name("u1", "Fresh") == "Fresh"
