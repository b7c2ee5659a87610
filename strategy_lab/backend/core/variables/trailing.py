"""Trailing variables derived from position trailing configurations."""

from __future__ import annotations

import logging
import uuid
from typing import Dict, List, Sequence, Tuple

from strategy_lab.backend.core.graph.models import Position, TrailingConfig, TrailingVariable

logger = logging.getLogger(__name__)


def default_trailing_config(enabled: bool = True) -> TrailingConfig:
    return TrailingConfig(enabled=enabled, price_move=1.0, trail_price=0.5, units="points", trail_type="position")


def trailing_variable_name(position: Position, trail_type: str) -> str:
    suffix = "Underlying" if trail_type == "underlying" else "Position"
    return f"Trailing_{position.vpt or position.vpi}_{suffix}"


def expected_trailing_keys(positions: Sequence[Position]) -> List[Tuple[str, str]]:
    """(positionId, trailType) pairs the variable set must consist of."""

    keys: List[Tuple[str, str]] = []
    for position in positions:
        config = position.trailing_config
        if config is None or not config.enabled:
            continue
        keys.append((position.vpi, "position"))
        if position.is_option:
            keys.append((position.vpi, "underlying"))
    return keys


def derive_trailing_variables(
    positions: Sequence[Position], existing: Sequence[TrailingVariable] = ()
) -> List[TrailingVariable]:
    """
    Recompute the trailing variables of a node from its positions.

    The result is exactly one variable per enabled trailing config, plus one
    for the underlying when the position is an option. Variables matching on
    `positionId` and trail type keep their id; everything else is dropped.
    """

    by_key: Dict[Tuple[str, str], TrailingVariable] = {
        (variable.position_id, variable.config.trail_type): variable for variable in existing
    }
    positions_by_vpi = {position.vpi: position for position in positions}
    derived: List[TrailingVariable] = []
    for vpi, trail_type in expected_trailing_keys(positions):
        position = positions_by_vpi[vpi]
        config = position.trailing_config.model_copy(update={"trail_type": trail_type})
        current = by_key.get((vpi, trail_type))
        derived.append(
            TrailingVariable(
                id=current.id if current is not None else str(uuid.uuid4()),
                name=trailing_variable_name(position, trail_type),
                position_id=vpi,
                config=config,
            )
        )

    kept_ids = {variable.id for variable in derived}
    dropped = sum(1 for variable in existing if variable.id not in kept_ids)
    if dropped:
        logger.debug("Dropped stale trailing variables | count=%d", dropped)
    return derived


def _enabled_config(position: Position) -> TrailingConfig:
    if position.trailing_config is None:
        return default_trailing_config()
    return position.trailing_config.model_copy(update={"enabled": True})


def set_trailing_enabled(positions: Sequence[Position], vpi: str, enabled: bool) -> List[Position]:
    """Toggle trailing on one position; disabling removes its config entirely."""

    return [
        position.model_copy(update={"trailing_config": _enabled_config(position) if enabled else None})
        if position.vpi == vpi
        else position
        for position in positions
    ]


__all__ = [
    "default_trailing_config",
    "trailing_variable_name",
    "expected_trailing_keys",
    "derive_trailing_variables",
    "set_trailing_enabled",
]
