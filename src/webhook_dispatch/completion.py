"""Counter of outstanding background work.

Works like a dispatch group: enter() when a unit of work starts, leave()
when it ends, and notify() callbacks run once the count is back at zero.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class BackgroundEventGroup:
    """Reentrant work counter with one-shot completion callbacks."""

    def __init__(self) -> None:
        self._count = 0
        self._callbacks: list[Callable[[], None]] = []

    @property
    def count(self) -> int:
        return self._count

    def enter(self) -> None:
        self._count += 1

    def leave(self) -> None:
        """Mark one unit of work finished.

        Raises:
            RuntimeError: If called more often than enter()
        """
        if self._count == 0:
            raise RuntimeError("leave() called without a matching enter()")
        self._count -= 1
        if self._count == 0:
            self._fire()

    def notify(self, callback: Callable[[], None]) -> None:
        """Run `callback` once the count reaches zero.

        Runs immediately if nothing is outstanding. Each callback runs at
        most once.
        """
        self._callbacks.append(callback)
        if self._count == 0:
            self._fire()

    def _fire(self) -> None:
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Error in background completion callback")
