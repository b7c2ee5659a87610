"""Error taxonomy for strategy graph editing, import and export."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence


class StrategyLabError(Exception):
    """Base class for domain errors surfaced to callers."""

    code = "strategy_error"
    default_message = "Something went wrong while processing the strategy."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def user_message(self) -> str:
        return self.message


class ValidationError(StrategyLabError):
    """Raised when a document or mutation is structurally invalid."""

    code = "validation_error"
    default_message = "Invalid strategy data."


class ConflictError(StrategyLabError):
    """Raised when a value collides with an existing one and the caller must choose."""

    code = "conflict"
    default_message = "The value conflicts with an existing one."

    def __init__(self, message: str | None = None, choices: Sequence[str] = ("cancel",), existing_id: str | None = None) -> None:
        super().__init__(message)
        self.choices = tuple(choices)
        self.existing_id = existing_id


class AccessError(StrategyLabError):
    """Raised when the requesting user is not allowed to read or write a document."""

    code = "access_denied"
    default_message = "Access denied: this strategy file belongs to another user."


class CorruptionError(StrategyLabError):
    """Raised when a document cannot be decoded at any stage."""

    code = "corrupted_document"
    default_message = "The strategy file is corrupted or not a valid strategy file."


@dataclass(frozen=True)
class TransientGuardSkip:
    """Outcome of an autosave pass that was deferred by the empty-edges guard."""

    reason: str
    node_count: int


def user_message(exc: BaseException) -> str:
    """Translate any exception raised by an import/export flow into one user-facing line."""

    if isinstance(exc, StrategyLabError):
        return exc.user_message
    return "Unexpected error while processing the strategy. Nothing was changed."


__all__ = [
    "StrategyLabError",
    "ValidationError",
    "ConflictError",
    "AccessError",
    "CorruptionError",
    "TransientGuardSkip",
    "user_message",
]
