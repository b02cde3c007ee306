from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from agentpulse.services.file_watcher import FileWatcher


@pytest.mark.asyncio
class TestFileWatcher:
    async def test_poll_triggers_on_change(self, tmp_path: Path) -> None:
        watcher = FileWatcher(poll_interval=0.01, use_file_events=False)
        calls: list[int] = []

        watcher.watch(1, str(tmp_path / "a.jsonl"), lambda: calls.append(1))
        await asyncio.sleep(0.05)
        watcher.cancel_all()

        assert len(calls) >= 2

    async def test_rewatch_replaces_previous(self, tmp_path: Path) -> None:
        watcher = FileWatcher(poll_interval=0.01, use_file_events=False)
        old: list[int] = []
        new: list[int] = []

        watcher.watch(1, str(tmp_path / "a.jsonl"), lambda: old.append(1))
        watcher.watch(1, str(tmp_path / "b.jsonl"), lambda: new.append(1))
        await asyncio.sleep(0.05)
        watcher.cancel(1)

        assert old == []
        assert new

    async def test_callback_errors_do_not_stop_polling(self, tmp_path: Path) -> None:
        watcher = FileWatcher(poll_interval=0.01, use_file_events=False)
        calls: list[int] = []

        def flaky() -> None:
            calls.append(1)
            raise OSError("transient")

        watcher.watch(1, str(tmp_path / "a.jsonl"), flaky)
        await asyncio.sleep(0.05)
        watcher.cancel(1)

        assert len(calls) >= 2

    async def test_cancel_stops_callbacks(self, tmp_path: Path) -> None:
        watcher = FileWatcher(poll_interval=0.01, use_file_events=False)
        calls: list[int] = []

        watcher.watch(1, str(tmp_path / "a.jsonl"), lambda: calls.append(1))
        watcher.cancel(1)
        assert not watcher.watching(1)

        await asyncio.sleep(0.03)
        assert calls == []

    async def test_file_events_trigger_tail(self, tmp_path: Path) -> None:
        path = tmp_path / "a.jsonl"
        path.write_text("")
        watcher = FileWatcher(poll_interval=60, use_file_events=True, debounce_ms=10)
        changed = asyncio.Event()

        watcher.watch(1, str(path), changed.set)
        await asyncio.sleep(0.2)  # let the notifier start
        path.write_text('{"type": "status"}\n')
        try:
            await asyncio.wait_for(changed.wait(), timeout=5)
        finally:
            watcher.cancel_all()

    async def test_wait_for_stops_when_check_passes(self) -> None:
        watcher = FileWatcher(file_poll_interval=0.01)
        attempts: list[int] = []

        def check() -> bool:
            attempts.append(1)
            return len(attempts) == 3

        watcher.wait_for(1, check)
        assert watcher.waiting(1)
        await asyncio.sleep(0.1)

        assert len(attempts) == 3
        assert not watcher.waiting(1)

    async def test_stop_waiting(self) -> None:
        watcher = FileWatcher(file_poll_interval=0.01)
        attempts: list[int] = []

        watcher.wait_for(1, lambda: attempts.append(1) is not None)
        await asyncio.sleep(0)
        watcher.stop_waiting(1)
        count = len(attempts)

        await asyncio.sleep(0.05)
        assert len(attempts) == count
