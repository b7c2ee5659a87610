"""Fire-and-forget signals the core emits towards the rendering layer."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class SignalType(str, Enum):
    """Process-wide signals; payloads are plain dictionaries."""

    FORCE_EDGE_UPDATE = "forceEdgeUpdate"
    DIRECT_IMPORT_TRIGGER = "directImportTrigger"
    OPEN_GLOBAL_VARIABLES = "openGlobalVariables"
    GLOBAL_AUTO_ARRANGE = "globalAutoArrange"
    SHOW_STRATEGY_OVERVIEW = "showStrategyOverview"


class LayoutAlgorithm(str, Enum):
    HIERARCHICAL = "hierarchical"
    LAYERED = "layered"
    FORCE = "force"
    TREE = "tree"


@dataclass
class Signal:
    type: SignalType
    payload: Dict[str, Any] = field(default_factory=dict)


Subscriber = Callable[[Signal], None]


class SignalBus:
    """Synchronous pub/sub; a failing subscriber never affects the emitter."""

    def __init__(self) -> None:
        self._subscribers: Dict[SignalType, List[Subscriber]] = defaultdict(list)
        self.history: List[Signal] = []

    def subscribe(self, signal_type: SignalType, callback: Subscriber) -> Callable[[], None]:
        """Register a callback and return a function that unregisters it."""

        self._subscribers[signal_type].append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers[signal_type]:
                self._subscribers[signal_type].remove(callback)

        return unsubscribe

    def emit(self, signal_type: SignalType, **payload: Any) -> Signal:
        signal = Signal(type=signal_type, payload=payload)
        self.history.append(signal)
        for callback in list(self._subscribers.get(signal_type, [])):
            try:
                callback(signal)
            except Exception:
                logger.exception("Signal subscriber failed | signal=%s", signal_type.value)
        return signal

    def request_auto_arrange(self, layout: LayoutAlgorithm = LayoutAlgorithm.HIERARCHICAL) -> Signal:
        return self.emit(SignalType.GLOBAL_AUTO_ARRANGE, layout=layout.value)


__all__ = ["SignalType", "LayoutAlgorithm", "Signal", "SignalBus"]
