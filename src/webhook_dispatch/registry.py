"""Handler and task registries owned by the WebhookManager.

Neither registry locks: both are only touched from the event loop, and
the background transport delivers its callbacks one at a time.
"""

from __future__ import annotations

import asyncio
import logging

from .errors import HandlerAlreadyRegisteredError
from .handlers import WebhookResponseHandler, WebhookResponseUnhandled
from .models import UNHANDLED

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Maps response identifiers to handler classes (write-once)."""

    def __init__(self) -> None:
        self._handlers: dict[str, type[WebhookResponseHandler]] = {}
        self.register(WebhookResponseUnhandled, UNHANDLED)

    def register(self, handler: type[WebhookResponseHandler], identifier: str) -> None:
        """Register a handler class for an identifier.

        Raises:
            HandlerAlreadyRegisteredError: If the identifier is taken
        """
        if identifier in self._handlers:
            raise HandlerAlreadyRegisteredError(identifier)
        self._handlers[identifier] = handler
        logger.debug(f"registered {handler.__name__} for {identifier}")

    def lookup(self, identifier: str) -> type[WebhookResponseHandler] | None:
        return self._handlers.get(identifier)

    def identifiers(self) -> list[str]:
        return list(self._handlers)


class TaskRegistry:
    """In-flight transfer state keyed by task identifier.

    Holds the response bytes received so far and the waiter of the caller
    who submitted the transfer.
    """

    def __init__(self) -> None:
        self._pending_data: dict[int, bytearray] = {}
        self._waiters: dict[int, asyncio.Future[None]] = {}

    def append_data(self, task_identifier: int, data: bytes) -> None:
        self._pending_data.setdefault(task_identifier, bytearray()).extend(data)

    def pop_data(self, task_identifier: int) -> bytes | None:
        """Remove and return the bytes received for a task."""
        data = self._pending_data.pop(task_identifier, None)
        return bytes(data) if data is not None else None

    def add_waiter(self, task_identifier: int, waiter: asyncio.Future[None]) -> None:
        if task_identifier in self._waiters:
            raise ValueError(f"waiter already registered for task {task_identifier}")
        self._waiters[task_identifier] = waiter

    def get_waiter(self, task_identifier: int) -> asyncio.Future[None] | None:
        return self._waiters.get(task_identifier)

    def pop_waiter(self, task_identifier: int) -> asyncio.Future[None] | None:
        return self._waiters.pop(task_identifier, None)

    def pop_all_waiters(self) -> list[asyncio.Future[None]]:
        """Remove and return every registered waiter."""
        waiters = list(self._waiters.values())
        self._waiters.clear()
        return waiters

    def pending_tasks(self) -> list[int]:
        """Task identifiers with buffered data or a waiter."""
        return sorted(set(self._pending_data) | set(self._waiters))

    def __len__(self) -> int:
        return len(self.pending_tasks())
