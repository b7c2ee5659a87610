"""Debounced, mergeable partial updates driven by an injectable clock."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
ApplyUpdate = Callable[[str, Dict[str, Any]], None]


class DebouncedUpdateQueue:
    """
    Accumulates partial updates per key and applies them after a quiet period.

    Every `submit` merges into the pending partial of its key and pushes the
    deadline back by `delay` seconds. The host loop calls `tick()`; once the
    deadline has passed, all pending partials are applied. `close()` applies
    whatever is pending synchronously so nothing is lost on teardown.
    """

    def __init__(self, apply: ApplyUpdate, delay: float, clock: Clock = time.monotonic, name: str = "updates") -> None:
        self._apply = apply
        self.delay = delay
        self.clock = clock
        self.name = name
        self._pending: Dict[str, Dict[str, Any]] = {}
        self._deadline: Optional[float] = None
        self._closed = False

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self, key: str) -> Dict[str, Any]:
        return dict(self._pending.get(key, {}))

    def submit(self, key: str, partial: Dict[str, Any]) -> None:
        if self._closed:
            self._apply(key, dict(partial))
            return
        self._pending.setdefault(key, {}).update(partial)
        self._deadline = self.clock() + self.delay

    def tick(self) -> int:
        """Apply pending updates if the quiet period has elapsed; returns how many keys were written."""

        if self._deadline is None or self.clock() < self._deadline:
            return 0
        return self.flush()

    def flush(self, key: Optional[str] = None) -> int:
        """Apply pending updates now, for one key or for all of them."""

        if key is not None:
            partial = self._pending.pop(key, None)
            if not self._pending:
                self._deadline = None
            if partial is None:
                return 0
            self._apply(key, partial)
            return 1

        self._deadline = None
        written = 0
        while self._pending:
            pending_key = next(iter(self._pending))
            partial = self._pending.pop(pending_key)
            self._apply(pending_key, partial)
            written += 1
        if written:
            logger.debug("Flushed debounced updates | queue=%s keys=%d", self.name, written)
        return written

    def cancel(self, key: Optional[str] = None) -> None:
        if key is None:
            self._pending.clear()
        else:
            self._pending.pop(key, None)
        if not self._pending:
            self._deadline = None

    def close(self) -> int:
        written = self.flush()
        self._closed = True
        return written


__all__ = ["Clock", "ApplyUpdate", "DebouncedUpdateQueue"]
