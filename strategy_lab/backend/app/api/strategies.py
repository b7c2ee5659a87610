"""Strategy import, export and migration endpoints."""

from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from strategy_lab.backend import settings as settings_module
from strategy_lab.backend.core.graph.store import GraphStore
from strategy_lab.backend.core.persistence.documents import summary, validate_document
from strategy_lab.backend.core.persistence.migration import migrate_document
from strategy_lab.backend.core.persistence.repository import FileKeyValueStorage, StrategyRepository
from strategy_lab.backend.core.persistence.service import StrategyPersistenceService

router = APIRouter(prefix="/strategies", tags=["strategies"])

get_settings_fn = settings_module.get_settings


def _service() -> StrategyPersistenceService:
    settings = get_settings_fn()
    repository = StrategyRepository(FileKeyValueStorage(settings.storage_root))
    return StrategyPersistenceService(GraphStore(settings.history_limit), repository, settings=settings)


class ImportRequest(BaseModel):
    userId: str
    text: str
    resolution: Optional[Literal["replace", "rename", "cancel"]] = None


class ImportResponse(BaseModel):
    imported: bool
    strategy: Optional[Dict[str, Any]] = None


class ExportRequest(BaseModel):
    userId: str
    document: Dict[str, Any]
    format: Literal["json", "secure", "user"] = "secure"


class ExportResponse(BaseModel):
    format: str
    content: str


class MigrateResponse(BaseModel):
    changed: bool
    document: Dict[str, Any]


@router.post("/import", response_model=ImportResponse)
def import_strategy(payload: ImportRequest) -> ImportResponse:
    """Import a JSON or obfuscated strategy file for a user."""

    document = _service().import_text(payload.text, payload.userId, payload.resolution)
    if document is None:
        return ImportResponse(imported=False)
    return ImportResponse(imported=True, strategy=summary(document))


@router.post("/export", response_model=ExportResponse)
def export_strategy(payload: ExportRequest) -> ExportResponse:
    """Export a document as plain JSON (privileged users) or in an obfuscated format."""

    service = _service()
    migrated, _ = migrate_document(payload.document)
    document = validate_document(migrated)
    if payload.format == "json":
        content = service.export_plain(payload.userId, document)
    else:
        content = service.export_secure(payload.userId, document, per_user=payload.format == "user")
    return ExportResponse(format=payload.format, content=content)


@router.post("/migrate", response_model=MigrateResponse)
def migrate_strategy(document: Dict[str, Any]) -> MigrateResponse:
    """Bring a stored document up to the current format."""

    migrated, changed = migrate_document(document)
    return MigrateResponse(changed=changed, document=migrated)


__all__ = ["router"]
