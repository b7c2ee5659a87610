"""Command line utilities for strategy documents: migrate, lint, preview, encode and decode."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import typer

from strategy_lab.backend.app.logging_config import configure_logging
from strategy_lab.backend.core.errors import StrategyLabError, user_message
from strategy_lab.backend.core.graph.dsl_serializer import StrategyDslSerializer
from strategy_lab.backend.core.graph.lint import GraphLinter
from strategy_lab.backend.core.persistence import codec
from strategy_lab.backend.core.persistence.documents import validate_document
from strategy_lab.backend.core.persistence.migration import migrate_document

app = typer.Typer(no_args_is_help=True, add_completion=False, help="Strategy document utilities.")
logger = logging.getLogger(__name__)


def _setup(log_level: str) -> None:
    try:
        configure_logging(log_level)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--log-level") from exc


def _read_document(path: Path, user_id: Optional[str]) -> Any:
    try:
        return codec.decode_text(path.read_text(encoding="utf-8"), user_id)
    except StrategyLabError as exc:
        logger.error("DECODE_ERROR | path=%s | %s", path, user_message(exc))
        raise typer.Exit(code=1)


@app.command("migrate")
def migrate(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Strategy JSON file."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the migrated document here instead of stdout."),
    in_place: bool = typer.Option(False, "--in-place", help="Overwrite the input file."),
    log_level: str = typer.Option("WARNING", "--log-level", "-l", help="Logging level."),
) -> None:
    _setup(log_level)
    raw = _read_document(path, None)
    if not isinstance(raw, dict):
        logger.error("MIGRATE_ERROR | path=%s | not a strategy document", path)
        raise typer.Exit(code=1)
    migrated, changed = migrate_document(raw)
    text = json.dumps(migrated, indent=2)
    target = path if in_place else output
    if target is None:
        typer.echo(text)
    else:
        target.write_text(text, encoding="utf-8")
        typer.echo(f"{'Migrated' if changed else 'Unchanged'}: {target}")


@app.command("lint")
def lint(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Strategy file (JSON or secure)."),
    user_id: Optional[str] = typer.Option(None, "--user-id", "-u", help="User id for per-user secure files."),
    format: str = typer.Option("table", "--format", help="Output format: table or json"),
    log_level: str = typer.Option("WARNING", "--log-level", "-l", help="Logging level."),
) -> None:
    _setup(log_level)
    raw = _read_document(path, user_id)
    migrated, _ = migrate_document(raw if isinstance(raw, dict) else {})
    try:
        issues = GraphLinter().lint(migrated.get("nodes") or [], migrated.get("edges") or [])
    except StrategyLabError as exc:
        logger.error("LINT_ERROR | path=%s | %s", path, user_message(exc))
        raise typer.Exit(code=1)
    if format.lower() == "json":
        typer.echo(json.dumps([issue.model_dump(exclude_none=True) for issue in issues], indent=2))
    elif not issues:
        typer.echo("No issues found.")
    else:
        for issue in issues:
            typer.echo(f"{issue.severity.upper()} | {issue.code} | {issue.message}")
    if any(issue.severity == "error" for issue in issues):
        raise typer.Exit(code=1)


@app.command("preview")
def preview(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Strategy file (JSON or secure)."),
    user_id: Optional[str] = typer.Option(None, "--user-id", "-u", help="User id for per-user secure files."),
    log_level: str = typer.Option("WARNING", "--log-level", "-l", help="Logging level."),
) -> None:
    """Print the strategy as YAML with a rendered condition preview per node."""

    _setup(log_level)
    raw = _read_document(path, user_id)
    try:
        migrated, _ = migrate_document(raw if isinstance(raw, dict) else {})
        document = validate_document(migrated)
    except StrategyLabError as exc:
        logger.error("PREVIEW_ERROR | path=%s | %s", path, user_message(exc))
        raise typer.Exit(code=1)
    typer.echo(StrategyDslSerializer().to_yaml(document))


@app.command("encode")
def encode(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Strategy JSON file."),
    user_id: Optional[str] = typer.Option(None, "--user-id", "-u", help="Bind the file to this user."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the secure file here instead of stdout."),
    log_level: str = typer.Option("WARNING", "--log-level", "-l", help="Logging level."),
) -> None:
    _setup(log_level)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.error("ENCODE_ERROR | path=%s | invalid JSON: %s", path, exc)
        raise typer.Exit(code=1)
    text = codec.obfuscate_for_user(payload, user_id) if user_id else codec.obfuscate(payload)
    if output is None:
        typer.echo(text)
    else:
        output.write_text(text, encoding="utf-8")


@app.command("decode")
def decode(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Secure strategy file."),
    user_id: Optional[str] = typer.Option(None, "--user-id", "-u", help="User id for per-user secure files."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the JSON here instead of stdout."),
    log_level: str = typer.Option("WARNING", "--log-level", "-l", help="Logging level."),
) -> None:
    _setup(log_level)
    text = json.dumps(_read_document(path, user_id), indent=2)
    if output is None:
        typer.echo(text)
    else:
        output.write_text(text, encoding="utf-8")


if __name__ == "__main__":
    app()


__all__ = ["app"]
