from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from agentpulse.models.events import AgentEvent
from agentpulse.services.directory_scanner import DirectoryScanner
from agentpulse.services.event_bus import EventBus
from agentpulse.services.file_watcher import FileWatcher
from agentpulse.services.registry import AgentRegistry
from agentpulse.services.timer_manager import TimerManager
from agentpulse.utils.config import Config


class RecordingSink:
    """Collects emitted events in order."""

    def __init__(self) -> None:
        self.events: list[AgentEvent] = []

    def emit(self, event: AgentEvent) -> None:
        self.events.append(event)

    def types(self, agent_id: int | None = None) -> list[str]:
        return [e.type for e in self.events if agent_id is None or e.agent_id == agent_id]

    def clear(self) -> None:
        self.events.clear()


class StubTimers:
    """Records the timer operations a parser asks for."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []

    def arm_waiting(self) -> None:
        self.calls.append(("arm_waiting",))

    def cancel_waiting(self) -> None:
        self.calls.append(("cancel_waiting",))

    def arm_permission(self) -> None:
        self.calls.append(("arm_permission",))

    def cancel_permission(self) -> None:
        self.calls.append(("cancel_permission",))

    def finish_tool_later(self, tool_id: str) -> None:
        self.calls.append(("finish_tool_later", tool_id))

    def made(self, name: str) -> bool:
        return any(call[0] == name for call in self.calls)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def config(tmp_path: Path) -> Config:
    # Short delays keep timer tests fast; the scan loop never fires on its own
    return Config(
        claude_projects_root=tmp_path / "claude",
        codex_projects_root=tmp_path / "codex",
        default_provider="claude",
        poll_interval=0.02,
        file_poll_interval=0.02,
        scan_interval=3600,
        use_file_events=False,
        watch_debounce_ms=10,
        tool_done_delay=0.01,
        permission_delay=0.15,
        text_idle_delay=0.05,
        log_level="DEBUG",
    )


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "claude" / "-work-repo"
    directory.mkdir(parents=True)
    return directory


@pytest.fixture
async def registry(sink: RecordingSink, config: Config) -> AgentRegistry:
    reg = AgentRegistry(
        sink,
        config,
        timers=TimerManager(),
        watcher=FileWatcher(
            poll_interval=config.poll_interval,
            file_poll_interval=config.file_poll_interval,
            use_file_events=False,
        ),
        scanner=DirectoryScanner(scan_interval=config.scan_interval),
    )
    yield reg  # type: ignore[misc]
    await reg.close()


@pytest.fixture
def write_lines() -> Callable[..., None]:
    """Append JSON records (or raw strings) to a transcript, one per line."""

    def _write(path: Path, *records: Any, newline: bool = True) -> None:
        with open(path, "a", encoding="utf-8") as f:
            for i, record in enumerate(records):
                text = record if isinstance(record, str) else json.dumps(record)
                last = i == len(records) - 1
                f.write(text + ("\n" if newline or not last else ""))

    return _write


# ----------------------------------------------------------------------
# Transcript record builders
# ----------------------------------------------------------------------


def tool_use(tool_id: str, name: str, **tool_input: Any) -> dict[str, Any]:
    return {
        "type": "assistant",
        "message": {
            "content": [{"type": "tool_use", "id": tool_id, "name": name, "input": tool_input}]
        },
    }


def tool_result(*tool_ids: str) -> dict[str, Any]:
    return {
        "type": "user",
        "message": {
            "content": [
                {"type": "tool_result", "tool_use_id": tool_id, "content": "ok"}
                for tool_id in tool_ids
            ]
        },
    }


def assistant_text(text: str) -> dict[str, Any]:
    return {"type": "assistant", "message": {"content": [{"type": "text", "text": text}]}}


def user_prompt(text: str) -> dict[str, Any]:
    return {"type": "user", "message": {"content": text}}


def turn_end() -> dict[str, Any]:
    return {"type": "system", "subtype": "turn_duration", "durationMs": 1200}
