"""Strategy graph: node/edge models, store with history, registry and editors."""

from strategy_lab.backend.core.graph.models import (
    DATA_MODELS,
    Edge,
    GlobalVariable,
    GlobalVariableUpdate,
    Node,
    NodeType,
    NodeVariable,
    Position,
    StrategyDocument,
    TrailingConfig,
    TrailingVariable,
)

__all__ = [
    "DATA_MODELS",
    "Edge",
    "GlobalVariable",
    "GlobalVariableUpdate",
    "Node",
    "NodeType",
    "NodeVariable",
    "Position",
    "StrategyDocument",
    "TrailingConfig",
    "TrailingVariable",
]
