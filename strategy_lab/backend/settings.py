"""Central settings for the Strategy Lab backend."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class StrategyLabSettings:
    """Holds filesystem locations and timing knobs for the strategy backend."""

    project_root: Path = Path(__file__).resolve().parents[2]
    config_root: Path = project_root / "configs" / "strategy_lab"
    storage_root: Path = project_root / "artifacts" / "strategy_lab" / "storage"
    history_limit: int = 100
    label_debounce_seconds: float = 0.5
    condition_debounce_seconds: float = 0.3
    variable_debounce_seconds: float = 1.0
    autosave_debounce_seconds: float = 2.0
    privileged_user_ids: list[str] = field(default_factory=list)
    log_level: str = "INFO"

    @property
    def exports_dir(self) -> Path:
        return self.storage_root.parent / "exports"

    def is_privileged(self, user_id: str | None) -> bool:
        return bool(user_id) and user_id in self.privileged_user_ids

    def with_overrides(self, overrides: dict[str, Any]) -> "StrategyLabSettings":
        """Return a copy of the settings with known keys replaced."""

        known = {f.name for f in fields(self)}
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        for key, value in overrides.items():
            if key not in known:
                logger.warning("Unknown settings key ignored | key=%s", key)
                continue
            if key in {"project_root", "config_root", "storage_root"}:
                value = Path(value)
            values[key] = value
        return StrategyLabSettings(**values)


def get_settings() -> StrategyLabSettings:
    """Return strategy backend settings."""

    return StrategyLabSettings()


def load_settings(name: str = "settings", base_path: str | Path | None = None) -> StrategyLabSettings:
    """Return settings with overrides from a YAML config, when one exists."""

    from strategy_lab.backend.core.config_loader import StrategyLabConfigLoader

    loader = StrategyLabConfigLoader(base_path)
    if name not in loader.list_configs():
        return get_settings()
    return get_settings().with_overrides(loader.settings_overrides(name))


__all__ = ["StrategyLabSettings", "get_settings", "load_settings"]
