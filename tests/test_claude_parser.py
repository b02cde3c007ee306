from __future__ import annotations

import json
from typing import Any

import pytest

from agentpulse.models.agent import AgentRecord, ToolInfo, TurnState
from agentpulse.models.events import StatusActive, ToolStarted
from agentpulse.parsers.claude import ClaudeParser
from conftest import StubTimers, assistant_text, tool_result, tool_use, turn_end, user_prompt


@pytest.fixture
def agent() -> AgentRecord:
    return AgentRecord(agent_id=7, project_dir="/tmp/project")


@pytest.fixture
def timers() -> StubTimers:
    return StubTimers()


def parse(agent: AgentRecord, timers: StubTimers, record: Any) -> list:
    line = record if isinstance(record, str) else json.dumps(record)
    return ClaudeParser().parse_line(agent, line, timers)  # type: ignore[arg-type]


def types(events: list) -> list[str]:
    return [e.type for e in events]


class TestToolLifecycle:
    def test_read_tool_use_starts_tool(self, agent: AgentRecord, timers: StubTimers) -> None:
        line = (
            '{"type":"assistant","message":{"content":[{"type":"tool_use","id":"t1",'
            '"name":"Read","input":{"file_path":"/repo/a.ts"}}]}}'
        )
        events = parse(agent, timers, line)

        assert types(events) == ["status_active", "tool_started"]
        started = events[1]
        assert isinstance(started, ToolStarted)
        assert started.tool_id == "t1"
        assert started.tool_name == "Read"
        assert started.status == "Reading a.ts"
        assert agent.active_tools == {"t1": ToolInfo(name="Read", status="Reading a.ts")}
        assert agent.turn_state is TurnState.ACTIVE
        assert timers.made("arm_permission")

    def test_several_tools_in_one_record(self, agent: AgentRecord, timers: StubTimers) -> None:
        record = tool_use("t1", "Read", file_path="a.py")
        record["message"]["content"].append(
            {"type": "tool_use", "id": "t2", "name": "Grep", "input": {"pattern": "x"}}
        )
        events = parse(agent, timers, record)

        assert types(events) == ["status_active", "tool_started", "tool_started"]
        assert set(agent.active_tools) == {"t1", "t2"}

    def test_repeated_tool_id_is_not_started_twice(
        self, agent: AgentRecord, timers: StubTimers
    ) -> None:
        parse(agent, timers, tool_use("t1", "Bash", command="ls"))
        assert parse(agent, timers, tool_use("t1", "Bash", command="ls")) == []
        assert len(agent.active_tools) == 1

    def test_missing_name_is_unknown(self, agent: AgentRecord, timers: StubTimers) -> None:
        record = {
            "type": "assistant",
            "message": {"content": [{"type": "tool_use", "id": "t9", "input": {}}]},
        }
        events = parse(agent, timers, record)
        assert events[-1].tool_name == "unknown"
        assert events[-1].status == "Using unknown"

    def test_tool_use_without_id_is_skipped(self, agent: AgentRecord, timers: StubTimers) -> None:
        record = {
            "type": "assistant",
            "message": {"content": [{"type": "tool_use", "name": "Read", "input": {}}]},
        }
        assert parse(agent, timers, record) == []
        assert agent.active_tools == {}

    def test_exempt_tool_does_not_arm_permission(
        self, agent: AgentRecord, timers: StubTimers
    ) -> None:
        parse(agent, timers, tool_use("t1", "AskUserQuestion", question="Continue?"))
        assert not timers.made("arm_permission")

    def test_result_finishes_tool_later(self, agent: AgentRecord, timers: StubTimers) -> None:
        parse(agent, timers, tool_use("t1", "Read", file_path="a.py"))
        events = parse(agent, timers, tool_result("t1"))

        # ToolFinished itself is delayed; the last tool going away ends the turn's tools
        assert "tool_finished" not in types(events)
        assert ("finish_tool_later", "t1") in timers.calls
        assert types(events) == ["status_waiting"]
        assert agent.active_tools == {}
        assert agent.turn_state is TurnState.WAITING

    def test_result_with_tools_still_running_keeps_active(
        self, agent: AgentRecord, timers: StubTimers
    ) -> None:
        parse(agent, timers, tool_use("t1", "Read", file_path="a.py"))
        parse(agent, timers, tool_use("t2", "Bash", command="make"))

        events = parse(agent, timers, tool_result("t1"))
        assert events == []
        assert set(agent.active_tools) == {"t2"}
        assert agent.turn_state is TurnState.ACTIVE

    def test_unmatched_result_is_ignored(self, agent: AgentRecord, timers: StubTimers) -> None:
        assert parse(agent, timers, tool_result("never-started")) == []
        assert not timers.made("finish_tool_later")

    def test_last_result_clears_pending_permission(
        self, agent: AgentRecord, timers: StubTimers
    ) -> None:
        parse(agent, timers, tool_use("t1", "Bash", command="rm -rf build"))
        agent.permission_pending = True

        events = parse(agent, timers, tool_result("t1"))
        assert types(events) == ["permission_cleared", "status_waiting"]
        assert agent.permission_pending is False


class TestTurns:
    def test_turn_duration_ends_turn(self, agent: AgentRecord, timers: StubTimers) -> None:
        parse(agent, timers, tool_use("t1", "Bash", command="sleep 100"))
        events = parse(agent, timers, turn_end())

        assert types(events) == ["tools_cleared", "status_waiting"]
        assert agent.active_tools == {}
        assert agent.is_waiting

    def test_turn_duration_without_tools(self, agent: AgentRecord, timers: StubTimers) -> None:
        assert types(parse(agent, timers, turn_end())) == ["status_waiting"]

    def test_text_only_reply_arms_waiting_debounce(
        self, agent: AgentRecord, timers: StubTimers
    ) -> None:
        events = parse(agent, timers, assistant_text("Here is the answer."))

        assert events == []
        assert timers.made("arm_waiting")
        assert agent.turn_state is TurnState.ACTIVE

    def test_text_after_tools_does_not_arm_waiting(
        self, agent: AgentRecord, timers: StubTimers
    ) -> None:
        parse(agent, timers, tool_use("t1", "Read", file_path="a.py"))
        parse(agent, timers, assistant_text("Reading the file first."))
        assert not timers.made("arm_waiting")

    def test_tool_use_cancels_waiting_debounce(
        self, agent: AgentRecord, timers: StubTimers
    ) -> None:
        parse(agent, timers, assistant_text("Let me look."))
        parse(agent, timers, tool_use("t1", "Read", file_path="a.py"))

        arm = timers.calls.index(("arm_waiting",))
        assert ("cancel_waiting",) in timers.calls[arm + 1 :]

    def test_thinking_blocks_are_ignored(self, agent: AgentRecord, timers: StubTimers) -> None:
        record = {
            "type": "assistant",
            "message": {"content": [{"type": "thinking", "thinking": "hmm"}]},
        }
        assert parse(agent, timers, record) == []
        assert timers.calls == []

    def test_new_prompt_clears_activity(self, agent: AgentRecord, timers: StubTimers) -> None:
        parse(agent, timers, tool_use("t1", "Bash", command="npm start"))
        events = parse(agent, timers, user_prompt("stop that and run the tests"))

        assert types(events) == ["tools_cleared", "status_active"]
        assert agent.active_tools == {}
        assert agent.turn_state is TurnState.ACTIVE

    def test_prompt_as_text_blocks(self, agent: AgentRecord, timers: StubTimers) -> None:
        record = {"type": "user", "message": {"content": [{"type": "text", "text": "hi"}]}}
        assert types(parse(agent, timers, record)) == ["tools_cleared", "status_active"]

    def test_blank_prompt_is_ignored(self, agent: AgentRecord, timers: StubTimers) -> None:
        assert parse(agent, timers, user_prompt("   ")) == []


class TestProgress:
    def test_bash_progress_rearms_permission(
        self, agent: AgentRecord, timers: StubTimers
    ) -> None:
        parse(agent, timers, tool_use("t1", "Bash", command="npm install"))
        timers.calls.clear()

        record = {"type": "progress", "parentToolUseID": "t1", "data": {"type": "bash_progress"}}
        assert parse(agent, timers, record) == []
        assert timers.calls == [("arm_permission",)]

    def test_progress_for_unknown_tool(self, agent: AgentRecord, timers: StubTimers) -> None:
        record = {"type": "progress", "parentToolUseID": "zz", "data": {"type": "mcp_progress"}}
        parse(agent, timers, record)
        assert timers.calls == []

    def test_agent_progress_is_not_tracked(self, agent: AgentRecord, timers: StubTimers) -> None:
        parse(agent, timers, tool_use("t1", "Task", description="sub"))
        timers.calls.clear()
        record = {"type": "progress", "parentToolUseID": "t1", "data": {"type": "agent_progress"}}
        assert parse(agent, timers, record) == []
        assert timers.calls == []


class TestMalformedInput:
    @pytest.mark.parametrize(
        "line",
        [
            "",
            "   ",
            "{not json",
            "[1, 2, 3]",
            '"just a string"',
            '{"type": "assistant"}',
            '{"type": "assistant", "message": {"content": "plain"}}',
            '{"type": "summary", "summary": "Refactor"}',
            '{"type": ["assistant"], "message": {"content": []}}',
            '{"type": "progress", "data": {"type": ["bash_progress"]}}',
            '{"type": "progress", "parentToolUseID": ["t1"], "data": {"type": "bash_progress"}}',
        ],
    )
    def test_yields_nothing(self, agent: AgentRecord, timers: StubTimers, line: str) -> None:
        assert parse(agent, timers, line) == []
        assert agent.active_tools == {}

    def test_malformed_line_does_not_stop_later_lines(
        self, agent: AgentRecord, timers: StubTimers
    ) -> None:
        parse(agent, timers, "{broken")
        events = parse(agent, timers, tool_use("t1", "Read", file_path="a.py"))
        assert isinstance(events[0], StatusActive)

    def test_list_parent_id_is_not_an_active_tool(
        self, agent: AgentRecord, timers: StubTimers
    ) -> None:
        parse(agent, timers, tool_use("t1", "Bash", command="make"))
        timers.calls.clear()

        record = {"type": "progress", "parentToolUseID": ["t1"], "data": {"type": "bash_progress"}}
        assert parse(agent, timers, record) == []
        assert not timers.made("arm_permission")
        assert set(agent.active_tools) == {"t1"}
