"""Connection context providers.

The manager asks a provider for the current connection every time it
builds a request or constructs a handler, so the destination can change
(or disappear) at runtime.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .config import DispatchConfig
from .models import ConnectionInfo


@runtime_checkable
class ConnectionProvider(Protocol):
    """Supplies the active connection, or None when there is none."""

    def current(self) -> ConnectionInfo | None: ...


class StaticConnectionProvider:
    """Provider holding a single, replaceable connection."""

    def __init__(self, connection: ConnectionInfo | None = None) -> None:
        self._connection = connection

    def current(self) -> ConnectionInfo | None:
        return self._connection

    def set(self, connection: ConnectionInfo | None) -> None:
        """Replace the connection (None disconnects)."""
        self._connection = connection

    @classmethod
    def from_config(cls, config: DispatchConfig) -> StaticConnectionProvider:
        return cls(ConnectionInfo.from_config(config))
