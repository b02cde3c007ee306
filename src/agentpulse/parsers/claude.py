from __future__ import annotations

import logging
from typing import Any

from agentpulse.models.agent import AgentRecord, Provider
from agentpulse.models.events import AgentEvent
from agentpulse.parsers.base import TranscriptParser
from agentpulse.services.timer_manager import AgentTimers

logger = logging.getLogger(__name__)

# Progress from a running tool proves it is not stuck on a confirmation
TOOL_PROGRESS_TYPES = frozenset({"bash_progress", "mcp_progress"})


class ClaudeParser(TranscriptParser):
    """Claude Code transcripts (provider A).

    The ``system``/``turn_duration`` record is the authoritative end of a
    turn. A text-only assistant record often precedes a tool call of the same
    turn in a separate record, so it only arms the waiting debounce.
    """

    provider = Provider.CLAUDE

    def handle_record(
        self, agent: AgentRecord, record: dict[str, Any], timers: AgentTimers
    ) -> list[AgentEvent]:
        events: list[AgentEvent] = []
        rec_type = record.get("type")

        if rec_type == "assistant":
            self._handle_assistant(agent, _content(record), timers, events)
        elif rec_type == "user":
            self._handle_user(agent, _content(record), timers, events)
        elif rec_type == "system" and record.get("subtype") == "turn_duration":
            self.end_turn(agent, timers, events)
        elif rec_type == "progress":
            self._handle_progress(agent, record, timers)

        return events

    def _handle_assistant(
        self,
        agent: AgentRecord,
        content: Any,
        timers: AgentTimers,
        events: list[AgentEvent],
    ) -> None:
        if not isinstance(content, list):
            return

        has_text = False
        started_any = False
        for block in content:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")
            if block_type == "tool_use":
                tool_id = block.get("id")
                if not isinstance(tool_id, str) or not tool_id:
                    continue
                tool_input = block.get("input")
                started_any |= self.start_tool(
                    agent,
                    tool_id,
                    str(block.get("name") or "unknown"),
                    tool_input if isinstance(tool_input, dict) else {},
                    timers,
                    events,
                )
            elif block_type == "text":
                text = block.get("text")
                has_text = has_text or (isinstance(text, str) and bool(text.strip()))
            # thinking / redacted_thinking blocks carry no status

        if not started_any and has_text and not agent.had_tools_this_turn:
            timers.arm_waiting()

    def _handle_user(
        self,
        agent: AgentRecord,
        content: Any,
        timers: AgentTimers,
        events: list[AgentEvent],
    ) -> None:
        if isinstance(content, str):
            if content.strip():
                self.new_prompt(agent, timers, events)
            return
        if not isinstance(content, list):
            return

        saw_result = False
        has_text = False
        for block in content:
            if not isinstance(block, dict):
                continue
            if block.get("type") == "tool_result":
                saw_result = True
                tool_id = block.get("tool_use_id")
                if isinstance(tool_id, str):
                    self.finish_tool(agent, tool_id, timers, events)
            elif block.get("type") == "text":
                text = block.get("text")
                has_text = has_text or (isinstance(text, str) and bool(text.strip()))

        if has_text and not saw_result:
            self.new_prompt(agent, timers, events)

    def _handle_progress(
        self, agent: AgentRecord, record: dict[str, Any], timers: AgentTimers
    ) -> None:
        data = record.get("data")
        if not isinstance(data, dict):
            return
        progress_type = data.get("type")
        if not isinstance(progress_type, str) or progress_type not in TOOL_PROGRESS_TYPES:
            # agent_progress (sub-agent activity) is not tracked
            return
        parent_id = record.get("parentToolUseID") or data.get("parentToolUseID")
        if isinstance(parent_id, str) and parent_id in agent.active_tools:
            timers.arm_permission()


def _content(record: dict[str, Any]) -> Any:
    message = record.get("message")
    if not isinstance(message, dict):
        return None
    return message.get("content")
