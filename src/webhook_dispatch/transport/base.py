"""Shared types for webhook transports.

Durable transfers are represented by TransferTask. The background session
reports progress to a delegate implementing BackgroundSessionDelegate;
callbacks are delivered one at a time, in order.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .background import BackgroundSession


class TransferState(str, Enum):
    """Lifecycle of a durable transfer."""

    SUSPENDED = "suspended"
    RUNNING = "running"
    CANCELING = "canceling"
    COMPLETED = "completed"


class TransferTask:
    """Handle for one durable upload.

    `tag` is opaque text persisted with the transfer; the manager stores the
    request metadata there so it is still available after a restart.
    """

    def __init__(
        self,
        session: BackgroundSession,
        task_identifier: int,
        method: str,
        url: str,
        headers: dict[str, str],
        tag: str | None = None,
    ) -> None:
        self._session = session
        self.task_identifier = task_identifier
        self.method = method
        self.url = url
        self.headers = headers
        self.tag = tag
        self.state = TransferState.SUSPENDED
        self.status_code: int | None = None

    def resume(self) -> None:
        """Start the upload (no-op unless suspended)."""
        self._session._resume(self)

    def cancel(self) -> None:
        """Request cancellation; completion is still reported to the delegate."""
        self._session._cancel(self)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransferTask):
            return NotImplemented
        return self._session is other._session and self.task_identifier == other.task_identifier

    def __hash__(self) -> int:
        return hash(self.task_identifier)

    def __repr__(self) -> str:
        return f"<TransferTask {self.task_identifier} {self.state.value} {self.method} {self.url}>"


@runtime_checkable
class BackgroundSessionDelegate(Protocol):
    """Receives events from a BackgroundSession."""

    def did_receive_data(
        self, session: BackgroundSession, task: TransferTask, data: bytes
    ) -> None: ...

    def did_complete(
        self, session: BackgroundSession, task: TransferTask, error: BaseException | None
    ) -> None: ...

    def did_finish_events(self, session: BackgroundSession) -> None: ...
