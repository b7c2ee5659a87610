"""API router collection for the Strategy Lab backend."""

from fastapi import APIRouter

from strategy_lab.backend.app.api import health, strategies, strategy_builder

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(strategy_builder.router)
api_router.include_router(strategies.router)

__all__ = ["api_router"]
