"""YAML overrides for the strategy backend settings."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from strategy_lab.backend.settings import get_settings

logger = logging.getLogger(__name__)

DELAY_KEYS = (
    "label_debounce_seconds",
    "condition_debounce_seconds",
    "variable_debounce_seconds",
    "autosave_debounce_seconds",
)


class StrategyLabConfigLoader:
    """Reads ``<name>.yaml`` files from the config root and checks settings overrides."""

    def __init__(self, base_path: str | Path | None = None) -> None:
        self.base_path: Path = Path(base_path) if base_path else get_settings().config_root

    def load_config(self, name: str) -> dict[str, Any]:
        """Load a YAML mapping by name without extension."""

        path = self.base_path / f"{name}.yaml"
        if not path.exists():
            raise FileNotFoundError(f"Strategy lab config '{name}' not found at {path}")

        try:
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            message = f"Invalid YAML in strategy lab config '{name}': {exc}"
            logger.error(message)
            raise ValueError(message) from exc

        if not isinstance(data, dict):
            raise ValueError(f"Strategy lab config '{name}' must be a mapping")

        logger.debug("Strategy lab config loaded | name=%s path=%s", name, path)
        return data

    def settings_overrides(self, name: str = "settings") -> dict[str, Any]:
        """
        Load overrides and reject values the editor cannot work with.

        Debounce delays must be non-negative numbers, ``history_limit`` a
        positive integer and ``privileged_user_ids`` a list of ids.
        """

        overrides = self.load_config(name)
        for key in DELAY_KEYS:
            if key in overrides:
                value = overrides[key]
                if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                    raise ValueError(f"'{key}' in config '{name}' must be a non-negative number of seconds")
        if "history_limit" in overrides:
            limit = overrides["history_limit"]
            if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
                raise ValueError(f"'history_limit' in config '{name}' must be a positive integer")
        if "privileged_user_ids" in overrides:
            users = overrides["privileged_user_ids"]
            if not isinstance(users, list):
                raise ValueError(f"'privileged_user_ids' in config '{name}' must be a list")
            overrides["privileged_user_ids"] = [str(user) for user in users]
        return overrides

    def list_configs(self) -> list[str]:
        """Return all available config names (without extension)."""

        if not self.base_path.exists():
            return []

        return sorted(config.stem for config in self.base_path.glob("*.yaml"))


__all__ = ["DELAY_KEYS", "StrategyLabConfigLoader"]
