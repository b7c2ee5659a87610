from __future__ import annotations

import re
from typing import Optional

_TIMEFRAME_PATTERN = re.compile(r"^\d+[mhd]$")


def sanitize_name(name: str) -> str:
    """Replace hyphens with underscores so names never read as a minus sign."""

    if not name:
        return name
    return name.replace("-", "_")


def format_uuid(value: str) -> str:
    if not value or len(value) < 8:
        return value
    if len(value) >= 36 and "-" in value:
        return f"ID_{value[:8].upper()}"
    return sanitize_name(value)


def normalize_identifier(identifier: str) -> str:
    if not identifier:
        return identifier
    if len(identifier) >= 36 and "-" in identifier:
        return format_uuid(identifier)
    return sanitize_name(identifier)


def format_display_name(
    base_name: str,
    instrument_type: Optional[str] = None,
    timeframe: Optional[str] = None,
    parameter: Optional[str] = None,
    offset: Optional[int] = None,
) -> str:
    """
    Build a dotted display name such as ``TI.5m.RSI(14).value``.

    Offsets wrap the name: ``0`` is ``Current[...]``, ``-1`` is ``Previous[...]``
    and any other negative offset ``N`` becomes ``|N|ago[...]``.
    """

    parts = [part for part in (instrument_type, timeframe) if part]
    parts.append(sanitize_name(base_name))
    if parameter:
        parts.append(parameter)
    display = ".".join(parts)

    if offset is None:
        return display
    if offset == 0:
        return f"Current[{display}]"
    if offset == -1:
        return f"Previous[{display}]"
    if offset < 0:
        return f"{abs(offset)}ago[{display}]"
    return display


def format_node_variable_reference(node_id: str, variable_name: str) -> str:
    return f"{normalize_identifier(node_id)}.{sanitize_name(variable_name)}"


def timeframe_display(timeframe_id: Optional[str]) -> str:
    """Fallback display for a timeframe id that is not known to the start node."""

    if not timeframe_id:
        return ""
    if _TIMEFRAME_PATTERN.match(timeframe_id):
        return timeframe_id
    if timeframe_id.startswith("tf_"):
        candidate = timeframe_id[3:].split("_", 1)[0]
        if _TIMEFRAME_PATTERN.match(candidate):
            return candidate
    return timeframe_id


__all__ = [
    "sanitize_name",
    "format_uuid",
    "normalize_identifier",
    "format_display_name",
    "format_node_variable_reference",
    "timeframe_display",
]
