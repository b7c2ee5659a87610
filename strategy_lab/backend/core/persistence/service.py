"""Load, save, import and export flows tying the store to the repository."""

from __future__ import annotations

import json
import logging
from typing import Literal, Optional

from strategy_lab.backend.core.errors import AccessError, ConflictError, ValidationError, user_message
from strategy_lab.backend.core.graph.models import StrategyDocument
from strategy_lab.backend.core.graph.store import GraphStore
from strategy_lab.backend.core.persistence import codec
from strategy_lab.backend.core.persistence.documents import (
    build_export_document,
    document_from_parts,
    fresh_identity,
    strip_export_enrichment,
    validate_document,
)
from strategy_lab.backend.core.persistence.migration import migrate_document
from strategy_lab.backend.core.persistence.repository import StrategyRepository
from strategy_lab.backend.core.signals import SignalBus, SignalType
from strategy_lab.backend.settings import StrategyLabSettings, get_settings

logger = logging.getLogger(__name__)

ImportResolution = Literal["replace", "rename", "cancel"]
IMPORT_CHOICES = ("replace", "rename", "cancel")


class StrategyPersistenceService:
    """Every persistence flow of the editor; all imports are atomic."""

    def __init__(
        self,
        store: GraphStore,
        repository: StrategyRepository,
        settings: Optional[StrategyLabSettings] = None,
        signals: Optional[SignalBus] = None,
    ) -> None:
        self.store = store
        self.repository = repository
        self.settings = settings or get_settings()
        self.signals = signals or SignalBus()

    def load_into_store(self, user_id: str, strategy_id: str) -> Optional[StrategyDocument]:
        """Replace the store contents with a stored strategy and start a fresh history."""

        document = self.repository.load(user_id, strategy_id)
        if document is None:
            logger.info("No stored strategy | user=%s strategy=%s", user_id, strategy_id)
            return None
        self._replace_store(document)
        logger.info("Strategy loaded | user=%s strategy=%s nodes=%d", user_id, strategy_id, len(document.nodes))
        return document

    def current_document(self, strategy_id: str, name: str, description: str = "") -> StrategyDocument:
        nodes, edges, global_variables = self.store.snapshot()
        return document_from_parts(strategy_id, name, nodes, edges, global_variables, description=description)

    def save(self, user_id: str, strategy_id: str, name: str) -> StrategyDocument:
        return self.repository.save(user_id, self.current_document(strategy_id, name))

    def export_plain(self, user_id: str, document: StrategyDocument, include_previews: bool = True) -> str:
        """Readable JSON export; only privileged users may produce it."""

        if not self.settings.is_privileged(user_id):
            logger.warning("Plain export refused | user=%s strategy=%s", user_id, document.id)
            raise AccessError("Only privileged users can export strategies as plain JSON.")
        return json.dumps(build_export_document(document, user_id, include_previews), indent=2)

    def export_secure(self, user_id: str, document: StrategyDocument, per_user: bool = False) -> str:
        payload = build_export_document(document, user_id)
        if per_user:
            return codec.obfuscate_for_user(payload, user_id)
        return codec.obfuscate(payload)

    def import_text(
        self,
        text: str,
        user_id: str,
        resolution: Optional[ImportResolution] = None,
    ) -> Optional[StrategyDocument]:
        """
        Decode, migrate, validate and store an imported file under a new identity.

        Fields the export added for readers are dropped first, so the stored
        nodes equal the ones that were exported.

        When a strategy with the same name exists and no `resolution` is
        given, a ``ConflictError`` listing the choices is raised. ``cancel``
        returns None without touching storage.
        """

        raw = codec.decode_text(text, user_id)
        if not isinstance(raw, dict):
            raise ValidationError("Invalid file format.")
        migrated, _ = migrate_document(strip_export_enrichment(raw))
        document = fresh_identity(validate_document(migrated))

        existing = self.repository.find_by_name(user_id, document.name)
        if existing is not None:
            if resolution is None:
                raise ConflictError(
                    f"A strategy named '{document.name}' already exists.",
                    choices=IMPORT_CHOICES,
                    existing_id=existing.get("id"),
                )
            if resolution == "cancel":
                logger.info("Import cancelled | user=%s name=%s", user_id, document.name)
                return None
            if resolution == "replace":
                document = document.model_copy(update={"id": existing["id"], "created": existing.get("created") or document.created})
            else:
                document = document.model_copy(update={"name": self.repository.unique_name(user_id, document.name)})

        saved = self.repository.save(user_id, document)
        logger.info("Strategy imported | user=%s strategy=%s name=%s", user_id, saved.id, saved.name)
        return saved

    def import_into_store(
        self,
        text: str,
        user_id: str,
        resolution: Optional[ImportResolution] = None,
    ) -> Optional[StrategyDocument]:
        """Import and load in one step; the store is untouched unless everything succeeds."""

        document = self.import_text(text, user_id, resolution)
        if document is None:
            return None
        self._replace_store(document)
        self.signals.emit(SignalType.DIRECT_IMPORT_TRIGGER, strategyId=document.id, name=document.name)
        return document

    def user_message(self, exc: BaseException) -> str:
        return user_message(exc)

    def _replace_store(self, document: StrategyDocument) -> None:
        self.store.set_global_variables(document.global_variables)
        self.store.reset_history()
        self.store.commit([node for node in document.nodes if not node.is_virtual], document.edges)
        self.store.ensure_overview_node()


__all__ = ["ImportResolution", "IMPORT_CHOICES", "StrategyPersistenceService"]
