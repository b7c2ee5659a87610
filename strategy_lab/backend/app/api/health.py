"""Health endpoint reporting what the strategy backend can serve."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from strategy_lab.backend import settings as settings_module
from strategy_lab.backend.core.graph.dsl_serializer import StrategyDslSerializer
from strategy_lab.backend.core.graph.registry import catalog

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict[str, Any]:
    """Node kinds and DSL version on offer, and whether strategy storage exists yet."""

    settings = settings_module.get_settings()
    return {
        "status": "ok",
        "service": "strategy_lab_backend",
        "nodeKinds": len(catalog()),
        "dslVersion": StrategyDslSerializer.VERSION,
        "storage": "ready" if settings.storage_root.is_dir() else "empty",
    }


__all__ = ["router"]
