"""
Persistence for durable background transfers.

Storage location: <storage_dir>/<task-id>/
Files created: record.json, body.json
A counter file (<storage_dir>/next_id) keeps task identifiers unique
across restarts.
"""

from __future__ import annotations

import logging
import shutil
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field, ValidationError

from ..config import DispatchConfig

logger = logging.getLogger(__name__)


class TransferRecord(BaseModel):
    """On-disk description of a pending transfer."""

    task_identifier: int
    method: str = "POST"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    tag: str | None = None
    created: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())


class TransferStoreProtocol(Protocol):
    """What BackgroundSession needs from a store."""

    def allocate_identifier(self) -> int: ...

    def save(self, record: TransferRecord, body: bytes) -> None: ...

    def load_body(self, task_identifier: int) -> bytes | None: ...

    def remove(self, task_identifier: int) -> bool: ...

    def list_records(self) -> list[TransferRecord]: ...


class TransferStore:
    """
    Filesystem store for pending transfers.

    Contract:
    - Inputs: TransferRecord plus request body bytes
    - Outputs: Saved records, loaded back in task-identifier order
    - Side Effects: Filesystem writes under storage_dir
    - Errors: Unreadable records are logged and skipped, never raised
    """

    def __init__(self, storage_dir: Path):
        self.storage_dir = storage_dir
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def _task_dir(self, task_identifier: int) -> Path:
        return self.storage_dir / str(task_identifier)

    def _counter_path(self) -> Path:
        return self.storage_dir / "next_id"

    def allocate_identifier(self) -> int:
        """Reserve the next task identifier."""
        counter = self._counter_path()
        try:
            next_id = int(counter.read_text(encoding="utf-8").strip() or "1")
        except (OSError, ValueError):
            next_id = 1

        # Never hand out an identifier that still has a record on disk
        existing = [r.task_identifier for r in self.list_records()]
        if existing:
            next_id = max(next_id, max(existing) + 1)

        counter.write_text(str(next_id + 1), encoding="utf-8")
        return next_id

    def save(self, record: TransferRecord, body: bytes) -> None:
        """Persist a transfer before it starts."""
        task_dir = self._task_dir(record.task_identifier)
        task_dir.mkdir(parents=True, exist_ok=True)

        (task_dir / "body.json").write_bytes(body)
        (task_dir / "record.json").write_text(record.model_dump_json(indent=2), encoding="utf-8")

        logger.debug(f"Transfer {record.task_identifier} saved")

    def load_record(self, task_identifier: int) -> TransferRecord | None:
        record_path = self._task_dir(task_identifier) / "record.json"
        if not record_path.exists():
            return None

        try:
            return TransferRecord.model_validate_json(record_path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning(f"Failed to load transfer {task_identifier}: {e}")
            return None

    def load_body(self, task_identifier: int) -> bytes | None:
        body_path = self._task_dir(task_identifier) / "body.json"
        try:
            return body_path.read_bytes()
        except OSError:
            return None

    def remove(self, task_identifier: int) -> bool:
        """Delete a transfer's files.

        Returns:
            True if deleted, False if not found
        """
        task_dir = self._task_dir(task_identifier)
        if not task_dir.exists():
            return False

        shutil.rmtree(task_dir)
        logger.debug(f"Transfer {task_identifier} removed")
        return True

    def list_records(self) -> list[TransferRecord]:
        """All readable records, oldest first."""
        if not self.storage_dir.exists():
            return []

        records = []
        for task_dir in self.storage_dir.iterdir():
            if not task_dir.is_dir() or not task_dir.name.isdigit():
                continue

            record = self.load_record(int(task_dir.name))
            if record is not None:
                records.append(record)

        records.sort(key=lambda r: r.task_identifier)
        return records


class MemoryTransferStore:
    """Non-persistent store, used when persistence is disabled."""

    def __init__(self) -> None:
        self._next_id = 1
        self._records: dict[int, tuple[TransferRecord, bytes]] = {}

    def allocate_identifier(self) -> int:
        task_identifier = self._next_id
        self._next_id += 1
        return task_identifier

    def save(self, record: TransferRecord, body: bytes) -> None:
        self._records[record.task_identifier] = (record, body)

    def load_body(self, task_identifier: int) -> bytes | None:
        entry = self._records.get(task_identifier)
        return entry[1] if entry else None

    def remove(self, task_identifier: int) -> bool:
        return self._records.pop(task_identifier, None) is not None

    def list_records(self) -> list[TransferRecord]:
        return [record for record, _ in sorted(self._records.values(), key=lambda e: e[0].task_identifier)]


def create_store(config: DispatchConfig) -> TransferStore | MemoryTransferStore:
    """Pick the store matching the configuration."""
    storage_dir = config.resolved_storage_dir()
    if storage_dir is None:
        return MemoryTransferStore()
    return TransferStore(storage_dir)
