"""Core services for the Strategy Lab backend."""

from strategy_lab.backend.core.config_loader import StrategyLabConfigLoader
from strategy_lab.backend.core.errors import (
    AccessError,
    ConflictError,
    CorruptionError,
    StrategyLabError,
    TransientGuardSkip,
    ValidationError,
    user_message,
)
from strategy_lab.backend.core.signals import LayoutAlgorithm, Signal, SignalBus, SignalType

__all__ = [
    "StrategyLabConfigLoader",
    "AccessError",
    "ConflictError",
    "CorruptionError",
    "StrategyLabError",
    "TransientGuardSkip",
    "ValidationError",
    "user_message",
    "LayoutAlgorithm",
    "Signal",
    "SignalBus",
    "SignalType",
]
