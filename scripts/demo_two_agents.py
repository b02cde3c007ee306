#!/usr/bin/env python3
"""Demo: two simulated agents writing transcripts while agentpulse follows them.

One agent writes Claude-style records, the other Codex-style records, into a
throwaway directory. Every status event the engine emits is printed.
"""

import asyncio
import dataclasses
import json
import sys
import tempfile
from pathlib import Path

# Add src to path so we can import without installing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from agentpulse.cli import format_event
from agentpulse.monitor import Monitor
from agentpulse.utils.config import get_config


def write(path: Path, record: dict) -> None:
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(record) + "\n")


async def claude_agent(log: Path) -> None:
    """Read a file, run a command, answer, end the turn."""
    write(log, {"type": "user", "message": {"content": "fix the failing test"}})
    await asyncio.sleep(0.5)
    write(log, {"type": "assistant", "message": {"content": [
        {"type": "tool_use", "id": "toolu_1", "name": "Read", "input": {"file_path": "/repo/src/auth.py"}},
    ]}})
    await asyncio.sleep(1.0)
    write(log, {"type": "user", "message": {"content": [
        {"type": "tool_result", "tool_use_id": "toolu_1", "content": "..."},
    ]}})
    write(log, {"type": "assistant", "message": {"content": [
        {"type": "tool_use", "id": "toolu_2", "name": "Bash", "input": {"command": "pytest tests/test_auth.py -q"}},
    ]}})
    await asyncio.sleep(1.5)
    write(log, {"type": "user", "message": {"content": [
        {"type": "tool_result", "tool_use_id": "toolu_2", "content": "1 passed"},
    ]}})
    write(log, {"type": "assistant", "message": {"content": [{"type": "text", "text": "Fixed."}]}})
    write(log, {"type": "system", "subtype": "turn_duration", "durationMs": 3100})


async def codex_agent(log: Path) -> None:
    """Start a long command and go quiet, which looks like a permission prompt."""
    await asyncio.sleep(0.3)
    write(log, {"type": "tool_call", "id": "call_1", "name": "run_command",
                "arguments": {"command": "npm install"}})
    await asyncio.sleep(3.0)
    write(log, {"type": "tool_result", "id": "call_1"})
    write(log, {"type": "status", "status": "idle"})


async def main():
    print("=" * 60)
    print("agentpulse two-agent demo")
    print("=" * 60)

    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        config = dataclasses.replace(
            get_config(),
            claude_projects_root=root / "claude",
            codex_projects_root=root / "codex",
            permission_delay=2.0,
            text_idle_delay=1.0,
        )
        claude_dir = config.claude_projects_root / "-repo"
        codex_dir = config.codex_projects_root / "-repo"
        claude_dir.mkdir(parents=True)
        codex_dir.mkdir(parents=True)

        async with Monitor(config) as monitor:

            async def show(event):
                print(format_event(event))

            monitor.bus.subscribe("*", show)

            monitor.registry.register_agent("claude", str(claude_dir), session_id="alice")
            monitor.registry.register_agent("codex", str(codex_dir))

            await asyncio.gather(
                claude_agent(claude_dir / "alice.jsonl"),
                codex_agent(codex_dir / "rollout-bob.jsonl"),
            )
            await asyncio.sleep(1.0)

            print("\n--- replay for a late subscriber ---")
            monitor.registry.replay_status()
            await asyncio.sleep(0.1)

    print("\n" + "=" * 60)
    print("Demo complete!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
