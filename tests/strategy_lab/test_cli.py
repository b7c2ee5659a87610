import json
from pathlib import Path

import yaml
from typer.testing import CliRunner

from strategy_lab.backend.core.graph.models import NodeType
from strategy_lab.backend.core.graph.registry import create_node
from strategy_lab.backend.core.persistence import codec
from strategy_lab.cli import app

runner = CliRunner()


def _write_document(path: Path, edges: bool = True) -> Path:
    document = {
        "id": "s1",
        "name": "Cli Strategy",
        "nodes": [
            create_node(NodeType.START, "start-1").to_wire(),
            create_node(NodeType.SIGNAL, "signal-1").to_wire(),
        ],
        "edges": [{"id": "e1", "source": "start-1", "target": "signal-1"}] if edges else [],
    }
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


def test_lint_clean_document(tmp_path: Path) -> None:
    path = _write_document(tmp_path / "strategy.json")
    result = runner.invoke(app, ["lint", str(path)])
    assert result.exit_code == 0
    assert "No issues found." in result.output


def test_lint_json_output_with_warnings(tmp_path: Path) -> None:
    path = _write_document(tmp_path / "strategy.json", edges=False)
    result = runner.invoke(app, ["lint", str(path), "--format", "json"])
    assert result.exit_code == 0
    issues = json.loads(result.output)
    assert [issue["code"] for issue in issues] == ["orphan_node"]


def test_encode_decode_round_trip_for_user(tmp_path: Path) -> None:
    source = _write_document(tmp_path / "strategy.json")
    secure = tmp_path / "strategy.sec"
    decoded = tmp_path / "decoded.json"

    encoded = runner.invoke(app, ["encode", str(source), "--user-id", "user-0001", "--output", str(secure)])
    assert encoded.exit_code == 0
    assert codec.is_user_bound(secure.read_text(encoding="utf-8"))

    result = runner.invoke(app, ["decode", str(secure), "--user-id", "user-0001", "--output", str(decoded)])
    assert result.exit_code == 0
    assert json.loads(decoded.read_text(encoding="utf-8"))["name"] == "Cli Strategy"

    denied = runner.invoke(app, ["decode", str(secure), "--user-id", "other-user"])
    assert denied.exit_code == 1


def test_preview_prints_yaml(tmp_path: Path) -> None:
    path = _write_document(tmp_path / "strategy.json")
    result = runner.invoke(app, ["preview", str(path)])
    assert result.exit_code == 0
    dsl = yaml.safe_load(result.output)
    assert dsl["name"] == "Cli Strategy"
    assert [node["id"] for node in dsl["nodes"]] == ["start-1", "signal-1"]


def test_migrate_in_place(tmp_path: Path) -> None:
    path = tmp_path / "legacy.json"
    path.write_text(
        json.dumps({"id": "s1", "nodes": [{"id": "n", "data": {"positions": [{"vpi": "p1"}]}}], "edges": []}),
        encoding="utf-8",
    )
    result = runner.invoke(app, ["migrate", str(path), "--in-place"])
    assert result.exit_code == 0
    assert "Migrated" in result.output
    assert json.loads(path.read_text(encoding="utf-8"))["nodes"][0]["data"]["positions"][0]["maxEntries"] == 1
