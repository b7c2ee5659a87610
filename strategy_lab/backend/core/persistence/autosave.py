"""Debounced, change-detecting autosave of the store into the repository."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Callable, Optional, Union

from strategy_lab.backend.core.errors import TransientGuardSkip
from strategy_lab.backend.core.graph.models import NodeType, StrategyDocument
from strategy_lab.backend.core.graph.store import GraphStore, MutationEvent
from strategy_lab.backend.core.persistence.documents import document_from_parts
from strategy_lab.backend.core.persistence.repository import StrategyRepository
from strategy_lab.backend.settings import get_settings

logger = logging.getLogger(__name__)

AutosaveResult = Union[StrategyDocument, TransientGuardSkip, None]


def state_hash(store: GraphStore) -> str:
    nodes, edges, global_variables = store.snapshot()
    payload = {
        "nodes": [node.to_wire() for node in nodes],
        "edges": [edge.to_wire() for edge in edges],
        "globalVariables": [variable.to_wire() for variable in global_variables],
    }
    return hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()


class AutosaveController:
    """
    Saves the store after a quiet period, skipping writes that would not change anything.

    A state with no edges while non-start nodes exist is treated as a
    transient hydration state: the write is pushed back by one delay and
    reported as a ``TransientGuardSkip`` instead of overwriting the stored
    graph.
    """

    def __init__(
        self,
        store: GraphStore,
        repository: StrategyRepository,
        user_id: str,
        strategy_id: str,
        name: str = "Untitled Strategy",
        delay: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        auto_subscribe: bool = True,
    ) -> None:
        self.store = store
        self.repository = repository
        self.user_id = user_id
        self.strategy_id = strategy_id
        self.name = name
        self.delay = get_settings().autosave_debounce_seconds if delay is None else delay
        self.clock = clock
        self.last_hash: Optional[str] = None
        self._deadline: Optional[float] = None
        self._unsubscribe = store.subscribe(self._on_mutation) if auto_subscribe else None

    @property
    def pending(self) -> bool:
        return self._deadline is not None

    def close(self) -> AutosaveResult:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        return self.save_now() if self.pending else None

    def mark_saved(self) -> None:
        """Treat the current store state as already persisted."""

        self.last_hash = state_hash(self.store)
        self._deadline = None

    def request(self) -> None:
        self._deadline = self.clock() + self.delay

    def tick(self) -> AutosaveResult:
        if self._deadline is None or self.clock() < self._deadline:
            return None
        return self.save_now()

    def save_now(self) -> AutosaveResult:
        nodes, edges, global_variables = self.store.snapshot()
        non_start = [node for node in nodes if node.type != NodeType.START]
        if not edges and non_start:
            skip = TransientGuardSkip(reason="edges empty while non-start nodes exist", node_count=len(nodes))
            logger.warning("Autosave deferred | strategy=%s reason=%s nodes=%d", self.strategy_id, skip.reason, skip.node_count)
            self._deadline = self.clock() + self.delay
            return skip

        current = state_hash(self.store)
        self._deadline = None
        if current == self.last_hash:
            logger.debug("Autosave skipped, state unchanged | strategy=%s", self.strategy_id)
            return None

        document = document_from_parts(self.strategy_id, self.name, nodes, edges, global_variables)
        saved = self.repository.save(self.user_id, document)
        self.last_hash = current
        return saved

    def _on_mutation(self, event: MutationEvent) -> None:
        self.request()


__all__ = ["AutosaveResult", "state_hash", "AutosaveController"]
