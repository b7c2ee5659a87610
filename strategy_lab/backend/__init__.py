"""Backend package for the Strategy Lab service."""

from strategy_lab.backend.settings import StrategyLabSettings, get_settings

__all__ = ["get_settings", "StrategyLabSettings"]
