import json
import logging

import pytest

from strategy_lab.backend.core.errors import AccessError, ConflictError, CorruptionError, TransientGuardSkip, ValidationError
from strategy_lab.backend.core.graph.models import Edge, NodeType
from strategy_lab.backend.core.graph.registry import create_node
from strategy_lab.backend.core.graph.store import GraphStore
from strategy_lab.backend.core.persistence import codec
from strategy_lab.backend.core.persistence.autosave import AutosaveController
from strategy_lab.backend.core.persistence.repository import InMemoryKeyValueStorage, StrategyRepository
from strategy_lab.backend.core.persistence.service import IMPORT_CHOICES, StrategyPersistenceService
from strategy_lab.backend.core.signals import SignalType
from strategy_lab.backend.settings import StrategyLabSettings


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _populated_store() -> GraphStore:
    store = GraphStore(history_limit=20)
    store.add_node(create_node(NodeType.START, "start-1"))
    store.add_node(create_node(NodeType.SIGNAL, "signal-1"))
    store.add_edge(Edge(id="e1", source="start-1", target="signal-1"))
    return store


def _service(store: GraphStore | None = None, privileged: tuple[str, ...] = ()) -> StrategyPersistenceService:
    settings = StrategyLabSettings(privileged_user_ids=list(privileged))
    return StrategyPersistenceService(
        store or GraphStore(history_limit=20),
        StrategyRepository(InMemoryKeyValueStorage()),
        settings=settings,
    )


def test_autosave_is_debounced_and_skips_unchanged_state() -> None:
    store = _populated_store()
    repository = StrategyRepository(InMemoryKeyValueStorage())
    clock = FakeClock()
    autosave = AutosaveController(store, repository, "u1", "s1", name="Auto", delay=2.0, clock=clock)

    store.update_node_data("signal-1", {"label": "Renamed"})
    assert autosave.pending
    clock.now = 1.0
    assert autosave.tick() is None
    clock.now = 2.5
    saved = autosave.tick()
    assert saved is not None and saved.name == "Auto"
    assert repository.load("u1", "s1").nodes[1].data.label == "Renamed"

    autosave.request()
    clock.now = 10.0
    assert autosave.tick() is None
    assert not autosave.pending
    autosave.close()


def test_autosave_guard_defers_edgeless_state() -> None:
    store = GraphStore(history_limit=20)
    store.add_node(create_node(NodeType.START, "start-1"))
    store.add_node(create_node(NodeType.SIGNAL, "signal-1"))
    repository = StrategyRepository(InMemoryKeyValueStorage())
    autosave = AutosaveController(store, repository, "u1", "s1", delay=0.0, clock=FakeClock())
    autosave.request()

    result = autosave.save_now()
    assert isinstance(result, TransientGuardSkip)
    assert result.node_count == 2
    assert repository.load("u1", "s1") is None
    assert autosave.pending


def test_autosave_guard_retries_after_one_delay(caplog) -> None:
    store = GraphStore(history_limit=20)
    store.add_node(create_node(NodeType.START, "start-1"))
    store.add_node(create_node(NodeType.SIGNAL, "signal-1"))
    repository = StrategyRepository(InMemoryKeyValueStorage())
    clock = FakeClock()
    autosave = AutosaveController(store, repository, "u1", "s1", delay=1.0, clock=clock)
    autosave.request()

    with caplog.at_level(logging.WARNING, logger="strategy_lab.backend.core.persistence.autosave"):
        clock.now = 1.0
        assert isinstance(autosave.tick(), TransientGuardSkip)
        assert autosave.tick() is None
        assert autosave.tick() is None
    assert len([record for record in caplog.records if "Autosave deferred" in record.message]) == 1
    assert autosave.pending

    store.add_edge(Edge(id="e1", source="start-1", target="signal-1"))
    clock.now = 2.5
    saved = autosave.tick()
    assert saved is not None and saved.id == "s1"
    assert not autosave.pending


def test_import_writes_new_identity_and_loads_store() -> None:
    source = _populated_store()
    exporter = _service(source)
    document = exporter.current_document("orig", "Breakout")
    text = exporter.export_secure("u1", document)

    store = GraphStore(history_limit=20)
    service = _service(store)
    received = []
    service.signals.subscribe(SignalType.DIRECT_IMPORT_TRIGGER, received.append)

    imported = service.import_into_store(text, "u1")
    assert imported.id != "orig"
    assert imported.name == "Breakout"
    assert service.repository.load("u1", imported.id) is not None
    assert [node.id for node in store.get_exportable_nodes()] == ["start-1", "signal-1"]
    assert len(store.nodes_of_type(NodeType.STRATEGY_OVERVIEW)) == 1
    assert len(store.history) == 1
    assert received[0].payload["strategyId"] == imported.id


def test_import_name_conflict_offers_choices() -> None:
    service = _service()
    text = json.dumps(_service(_populated_store()).current_document("x", "Breakout").to_wire())
    first = service.import_text(text, "u1")

    with pytest.raises(ConflictError) as excinfo:
        service.import_text(text, "u1")
    assert excinfo.value.choices == IMPORT_CHOICES
    assert excinfo.value.existing_id == first.id

    assert service.import_text(text, "u1", "cancel") is None
    renamed = service.import_text(text, "u1", "rename")
    assert renamed.name == "Breakout (1)"
    replaced = service.import_text(text, "u1", "replace")
    assert replaced.id == first.id
    assert len(service.repository.list("u1")) == 2


def test_failed_import_leaves_store_untouched() -> None:
    store = _populated_store()
    service = _service(store)
    before = [node.id for node in store.nodes]

    with pytest.raises(CorruptionError):
        service.import_into_store("not-a-valid-file!", "u1")
    with pytest.raises(ValidationError):
        service.import_into_store(json.dumps({"nodes": "nope", "edges": []}), "u1")
    with pytest.raises(ValidationError):
        service.import_into_store(json.dumps([1, 2]), "u1")

    assert [node.id for node in store.nodes] == before
    assert "corrupted" in service.user_message(CorruptionError())


def test_per_user_export_cannot_be_imported_by_another_user() -> None:
    service = _service(_populated_store())
    text = service.export_secure("owner-123456", service.current_document("s1", "Mine"), per_user=True)

    with pytest.raises(AccessError):
        service.import_text(text, "intruder-99")
    assert codec.can_user_decode(text, "owner-123456")


def test_plain_export_requires_privilege() -> None:
    store = _populated_store()
    document = _service(store).current_document("s1", "Plain")

    with pytest.raises(AccessError):
        _service(store).export_plain("u1", document)
    text = _service(store, privileged=("admin",)).export_plain("admin", document)
    payload = json.loads(text)
    assert payload["userId"] == "admin"
    assert payload["strategyId"] == "s1"


def test_export_then_import_keeps_nodes_and_edges_equal() -> None:
    store = _populated_store()
    store.update_node_data(
        "signal-1",
        {
            "conditions": [
                {
                    "id": "root",
                    "groupLogic": "AND",
                    "conditions": [
                        {"id": "c1", "operator": ">", "lhs": {"type": "constant", "value": 5}, "rhs": {"type": "constant", "value": 3}}
                    ],
                }
            ]
        },
    )
    service = _service(store, privileged=("admin",))
    document = service.current_document("s1", "Round Trip")
    originals = [node for node in document.nodes if not node.is_virtual]

    plain = service.export_plain("admin", document)
    assert json.loads(plain)["nodes"][1]["data"]["conditionsPreview"] == "5 > 3"
    imported = service.import_text(plain, "admin")
    assert imported.nodes == originals
    assert imported.edges == document.edges

    secure = service.export_secure("admin-0001", document, per_user=True)
    again = service.import_text(secure, "admin-0001", "rename")
    assert again.nodes == originals
    assert "conditionsPreview" not in again.nodes[1].data.model_extra


def test_load_into_store_resets_history() -> None:
    source = _populated_store()
    service = _service(source)
    service.save("u1", "s1", "Saved")

    target = GraphStore(history_limit=20)
    loader = StrategyPersistenceService(target, service.repository, settings=service.settings)
    assert loader.load_into_store("u1", "s1").name == "Saved"
    assert len(target.history) == 1
    assert not target.can_undo
    assert loader.load_into_store("u1", "missing") is None
