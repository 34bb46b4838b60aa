"""Tests for background transfer persistence."""

from __future__ import annotations

from pathlib import Path

from webhook_dispatch.config import DispatchConfig
from webhook_dispatch.transport.store import (
    MemoryTransferStore,
    TransferRecord,
    TransferStore,
    create_store,
)

URL = "https://example.test/api/webhook/abc"


def make_record(task_identifier: int, tag: str | None = "tag") -> TransferRecord:
    return TransferRecord(
        task_identifier=task_identifier,
        url=URL,
        headers={"content-type": "application/json"},
        tag=tag,
    )


class TestTransferStore:
    """Filesystem store."""

    def test_save_and_list(self, tmp_path: Path) -> None:
        store = TransferStore(tmp_path)
        store.save(make_record(2), b'{"b":2}')
        store.save(make_record(1), b'{"a":1}')

        records = store.list_records()

        assert [r.task_identifier for r in records] == [1, 2]
        assert records[0].url == URL
        assert records[0].tag == "tag"
        assert store.load_body(2) == b'{"b":2}'

    def test_survives_new_instance(self, tmp_path: Path) -> None:
        TransferStore(tmp_path).save(make_record(5, tag=None), b"{}")

        records = TransferStore(tmp_path).list_records()

        assert len(records) == 1
        assert records[0].tag is None

    def test_remove(self, tmp_path: Path) -> None:
        store = TransferStore(tmp_path)
        store.save(make_record(1), b"{}")

        assert store.remove(1) is True
        assert store.remove(1) is False
        assert store.list_records() == []
        assert store.load_body(1) is None

    def test_identifiers_are_unique_across_instances(self, tmp_path: Path) -> None:
        first = TransferStore(tmp_path).allocate_identifier()
        second = TransferStore(tmp_path).allocate_identifier()

        assert second > first

    def test_identifier_skips_existing_records(self, tmp_path: Path) -> None:
        store = TransferStore(tmp_path)
        store.save(make_record(10), b"{}")
        (tmp_path / "next_id").unlink(missing_ok=True)

        assert store.allocate_identifier() == 11

    def test_corrupt_record_is_skipped(self, tmp_path: Path) -> None:
        store = TransferStore(tmp_path)
        store.save(make_record(1), b"{}")
        broken = tmp_path / "2"
        broken.mkdir()
        (broken / "record.json").write_text("{not json", encoding="utf-8")

        assert [r.task_identifier for r in store.list_records()] == [1]


class TestMemoryTransferStore:
    def test_save_list_remove(self) -> None:
        store = MemoryTransferStore()
        first = store.allocate_identifier()
        second = store.allocate_identifier()
        store.save(make_record(second), b"2")
        store.save(make_record(first), b"1")

        assert [r.task_identifier for r in store.list_records()] == [first, second]
        assert store.load_body(first) == b"1"
        assert store.remove(first) is True
        assert store.remove(first) is False


class TestCreateStore:
    def test_persistent(self, tmp_path: Path) -> None:
        store = create_store(DispatchConfig(storage_dir=tmp_path))

        assert isinstance(store, TransferStore)
        assert store.storage_dir == tmp_path

    def test_no_persist(self) -> None:
        assert isinstance(create_store(DispatchConfig(persist=False)), MemoryTransferStore)
