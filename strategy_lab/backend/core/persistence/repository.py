"""Per-user strategy storage on top of a simple key/value backend."""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from strategy_lab.backend.core.errors import CorruptionError
from strategy_lab.backend.core.graph.models import StrategyDocument
from strategy_lab.backend.core.persistence.documents import now_iso, summary, validate_document
from strategy_lab.backend.core.persistence.migration import migrate_document
from strategy_lab.backend.settings import get_settings

logger = logging.getLogger(__name__)


class KeyValueStorage(ABC):
    """Interface for the string key/value store strategies are persisted in."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key; missing keys are ignored."""

    @abstractmethod
    def keys(self) -> List[str]:
        """List all stored keys."""


class InMemoryKeyValueStorage(KeyValueStorage):
    def __init__(self) -> None:
        self._values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._values)


class FileKeyValueStorage(KeyValueStorage):
    """One file per key under a root directory."""

    _UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")

    def __init__(self, root: Path | None = None) -> None:
        self.root = Path(root) if root else get_settings().storage_root

    def _path(self, key: str) -> Path:
        return self.root / f"{self._UNSAFE.sub('_', key)}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self._path(key).write_text(value, encoding="utf-8")

    def delete(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()

    def keys(self) -> List[str]:
        if not self.root.exists():
            return []
        return sorted(path.stem for path in self.root.glob("*.json"))


def strategy_key(user_id: str, strategy_id: str) -> str:
    return f"user_{user_id}_strategy_{strategy_id}"


def created_key(user_id: str, strategy_id: str) -> str:
    return f"{strategy_key(user_id, strategy_id)}_created"


def index_key(user_id: str) -> str:
    return f"user_{user_id}_strategies"


class StrategyRepository:
    """
    Stores full strategy documents per user plus a summary index.

    Loading migrates older documents and writes the migrated form back once,
    so later loads are no-ops.
    """

    def __init__(self, storage: KeyValueStorage) -> None:
        self.storage = storage

    def save(self, user_id: str, document: StrategyDocument) -> StrategyDocument:
        created = self.storage.get(created_key(user_id, document.id))
        if created is None:
            created = document.created or now_iso()
            self.storage.set(created_key(user_id, document.id), created)
        stored = document.model_copy(
            update={
                "created": created,
                "last_modified": now_iso(),
                "user_id": user_id,
                "strategy_id": document.id,
                "nodes": [node for node in document.nodes if not node.is_virtual],
            }
        )
        self.storage.set(strategy_key(user_id, document.id), json.dumps(stored.to_wire()))
        self._update_index(user_id, stored)
        logger.info("Strategy saved | user=%s strategy=%s nodes=%d", user_id, document.id, len(stored.nodes))
        return stored

    def load(self, user_id: str, strategy_id: str) -> Optional[StrategyDocument]:
        key = strategy_key(user_id, strategy_id)
        raw_text = self.storage.get(key)
        if raw_text is None:
            return None
        try:
            raw = json.loads(raw_text)
        except json.JSONDecodeError as exc:
            raise CorruptionError(f"Stored strategy '{strategy_id}' is not valid JSON.") from exc
        migrated, changed = migrate_document(raw)
        if changed:
            self.storage.set(key, json.dumps(migrated))
        return validate_document(migrated)

    def delete(self, user_id: str, strategy_id: str) -> None:
        self.storage.delete(strategy_key(user_id, strategy_id))
        self.storage.delete(created_key(user_id, strategy_id))
        entries = [entry for entry in self.list(user_id) if entry.get("id") != strategy_id]
        self.storage.set(index_key(user_id), json.dumps(entries))
        logger.info("Strategy deleted | user=%s strategy=%s", user_id, strategy_id)

    def list(self, user_id: str) -> List[Dict[str, Any]]:
        raw = self.storage.get(index_key(user_id))
        if not raw:
            return []
        try:
            entries = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Strategy index unreadable, starting fresh | user=%s", user_id)
            return []
        return entries if isinstance(entries, list) else []

    def find_by_name(self, user_id: str, name: str) -> Optional[Dict[str, Any]]:
        for entry in self.list(user_id):
            if entry.get("name") == name:
                return entry
        return None

    def unique_name(self, user_id: str, name: str) -> str:
        """`name` or the first free ``name (n)``."""

        taken = {entry.get("name") for entry in self.list(user_id)}
        if name not in taken:
            return name
        counter = 1
        while f"{name} ({counter})" in taken:
            counter += 1
        return f"{name} ({counter})"

    def _update_index(self, user_id: str, document: StrategyDocument) -> None:
        entries = self.list(user_id)
        entry = summary(document)
        for index, existing in enumerate(entries):
            if existing.get("id") == document.id:
                entries[index] = entry
                break
        else:
            entries.append(entry)
        self.storage.set(index_key(user_id), json.dumps(entries))


__all__ = [
    "KeyValueStorage",
    "InMemoryKeyValueStorage",
    "FileKeyValueStorage",
    "strategy_key",
    "created_key",
    "index_key",
    "StrategyRepository",
]
