"""Re-entry linking between re-entry-signal nodes and entry nodes."""

from strategy_lab.backend.core.reentry.resolver import NO_TARGET, ReEntryLinkResolver

__all__ = ["NO_TARGET", "ReEntryLinkResolver"]
