"""Webhook transports.

- EphemeralTransport: request/response over httpx, lost on process exit
- BackgroundSession: persisted uploads with delegate callbacks, resumed
  after a restart
"""

from .background import DEFAULT_SESSION_IDENTIFIER, BackgroundSession
from .base import BackgroundSessionDelegate, TransferState, TransferTask
from .ephemeral import EphemeralTransport
from .store import MemoryTransferStore, TransferRecord, TransferStore, create_store

__all__ = [
    "DEFAULT_SESSION_IDENTIFIER",
    "BackgroundSession",
    "BackgroundSessionDelegate",
    "EphemeralTransport",
    "MemoryTransferStore",
    "TransferRecord",
    "TransferState",
    "TransferStore",
    "TransferTask",
    "create_store",
]
