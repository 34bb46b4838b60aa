"""Unit tests for BackgroundEventGroup."""

from __future__ import annotations

import pytest

from webhook_dispatch.completion import BackgroundEventGroup


class TestBackgroundEventGroup:
    """Counting and one-shot notification."""

    def test_starts_at_zero(self) -> None:
        group = BackgroundEventGroup()
        assert group.count == 0

    def test_notify_when_idle_fires_immediately(self) -> None:
        group = BackgroundEventGroup()
        calls: list[str] = []

        group.notify(lambda: calls.append("done"))

        assert calls == ["done"]

    def test_notify_waits_for_last_leave(self) -> None:
        group = BackgroundEventGroup()
        calls: list[int] = []

        group.enter()
        group.enter()
        group.notify(lambda: calls.append(group.count))

        group.leave()
        assert calls == []

        group.leave()
        assert calls == [0]

    def test_callback_fires_only_once(self) -> None:
        group = BackgroundEventGroup()
        calls: list[str] = []

        group.enter()
        group.notify(lambda: calls.append("done"))
        group.leave()

        # Reentering and draining again does not refire the old callback
        group.enter()
        group.leave()

        assert calls == ["done"]

    def test_reentrant_enter_from_many_workers(self) -> None:
        group = BackgroundEventGroup()
        calls: list[str] = []

        group.enter()  # wake window
        group.notify(lambda: calls.append("done"))

        for _ in range(5):
            group.enter()
        for _ in range(5):
            group.leave()
        assert calls == []

        group.leave()  # events flushed
        assert calls == ["done"]

    def test_unbalanced_leave_raises(self) -> None:
        group = BackgroundEventGroup()

        with pytest.raises(RuntimeError):
            group.leave()

    def test_failing_callback_does_not_block_others(self) -> None:
        group = BackgroundEventGroup()
        calls: list[str] = []

        def broken() -> None:
            raise ValueError("boom")

        group.enter()
        group.notify(broken)
        group.notify(lambda: calls.append("second"))
        group.leave()

        assert calls == ["second"]
