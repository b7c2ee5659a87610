import logging
from pathlib import Path

import pytest

from strategy_lab.backend.app.logging_config import EDITOR_CHATTER_LOGGERS, configure_logging, resolve_level
from strategy_lab.backend.core.config_loader import StrategyLabConfigLoader
from strategy_lab.backend.settings import StrategyLabSettings, get_settings, load_settings


def test_loader_lists_and_loads_yaml(tmp_path: Path) -> None:
    (tmp_path / "settings.yaml").write_text("history_limit: 25\nprivileged_user_ids: [admin]\n", encoding="utf-8")
    (tmp_path / "broken.yaml").write_text("- just\n- a list\n", encoding="utf-8")
    loader = StrategyLabConfigLoader(tmp_path)

    assert loader.list_configs() == ["broken", "settings"]
    assert loader.load_config("settings")["history_limit"] == 25
    with pytest.raises(ValueError):
        loader.load_config("broken")
    with pytest.raises(FileNotFoundError):
        loader.load_config("missing")


def test_missing_directory_lists_nothing(tmp_path: Path) -> None:
    assert StrategyLabConfigLoader(tmp_path / "nope").list_configs() == []


def test_load_settings_applies_overrides(tmp_path: Path) -> None:
    (tmp_path / "settings.yaml").write_text(
        f"history_limit: 25\nprivileged_user_ids: [admin]\nstorage_root: {tmp_path / 'store'}\nunknown_key: 1\n",
        encoding="utf-8",
    )
    settings = load_settings(base_path=tmp_path)
    assert settings.history_limit == 25
    assert settings.is_privileged("admin")
    assert not settings.is_privileged(None)
    assert settings.storage_root == tmp_path / "store"
    assert settings.exports_dir == tmp_path / "exports"


def test_defaults_without_config(tmp_path: Path) -> None:
    settings = load_settings(base_path=tmp_path)
    assert settings.history_limit == get_settings().history_limit == 100
    assert StrategyLabSettings().condition_debounce_seconds == 0.3


@pytest.mark.parametrize(
    "content",
    [
        "history_limit: 0\n",
        "history_limit: many\n",
        "autosave_debounce_seconds: -1\n",
        "label_debounce_seconds: true\n",
        "privileged_user_ids: admin\n",
    ],
)
def test_settings_overrides_reject_unusable_values(tmp_path: Path, content: str) -> None:
    (tmp_path / "settings.yaml").write_text(content, encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(base_path=tmp_path)


def test_settings_overrides_normalise_user_ids(tmp_path: Path) -> None:
    (tmp_path / "settings.yaml").write_text("privileged_user_ids: [42, admin]\nlog_level: DEBUG\n", encoding="utf-8")
    settings = load_settings(base_path=tmp_path)
    assert settings.privileged_user_ids == ["42", "admin"]
    assert settings.is_privileged("42")
    assert settings.log_level == "DEBUG"


def test_configure_logging_levels() -> None:
    configure_logging("info")
    assert logging.getLogger(EDITOR_CHATTER_LOGGERS[0]).level == logging.WARNING
    configure_logging("DEBUG")
    assert logging.getLogger(EDITOR_CHATTER_LOGGERS[0]).level == logging.DEBUG
    assert resolve_level(logging.ERROR) == logging.ERROR
    with pytest.raises(ValueError):
        configure_logging("loud")
