from __future__ import annotations

import logging
from typing import Any

from agentpulse.models.agent import AgentRecord, Provider
from agentpulse.models.events import AgentEvent
from agentpulse.parsers.base import TranscriptParser
from agentpulse.parsers.claude import ClaudeParser
from agentpulse.services.timer_manager import AgentTimers

logger = logging.getLogger(__name__)

TOOL_START_TYPES = frozenset({"tool_start", "tool_call"})
TOOL_END_TYPES = frozenset({"tool_end", "tool_result"})

CODEX_TOOL_NAME_MAP = {
    "read_file": "Read",
    "read": "Read",
    "write_file": "Write",
    "write": "Write",
    "edit_file": "Edit",
    "edit": "Edit",
    "run_command": "Bash",
    "bash": "Bash",
    "shell": "Bash",
    "search_files": "Glob",
    "glob": "Glob",
    "grep": "Grep",
    "search_code": "Grep",
    "web_fetch": "WebFetch",
    "web_search": "WebSearch",
    "ask_user": "AskUserQuestion",
    "ask_user_question": "AskUserQuestion",
    "plan": "EnterPlanMode",
}


def normalize_tool_name(name: Any) -> str:
    """Map a Codex tool name onto the shared display vocabulary."""
    if not isinstance(name, str) or not name:
        return "Tool"
    return CODEX_TOOL_NAME_MAP.get(name.lower(), name)


class CodexParser(TranscriptParser):
    """Codex transcripts (provider B).

    Records it does not recognize are handed to the Claude parser, since the
    two log formats increasingly share record shapes.
    """

    provider = Provider.CODEX

    def __init__(self, fallback: TranscriptParser | None = None):
        self.fallback = fallback or ClaudeParser()

    def handle_record(
        self, agent: AgentRecord, record: dict[str, Any], timers: AgentTimers
    ) -> list[AgentEvent]:
        events: list[AgentEvent] = []
        rec_type = record.get("type")
        if not isinstance(rec_type, str):
            rec_type = None

        if rec_type in TOOL_START_TYPES:
            tool_id = _tool_id(record)
            if tool_id:
                self.start_tool(
                    agent,
                    tool_id,
                    normalize_tool_name(record.get("tool_name") or record.get("name")),
                    _tool_input(record),
                    timers,
                    events,
                )
            return events

        if rec_type in TOOL_END_TYPES:
            tool_id = _tool_id(record)
            if tool_id:
                self.finish_tool(agent, tool_id, timers, events)
            return events

        if rec_type == "status":
            status = record.get("status")
            if status in ("waiting", "idle"):
                self.mark_waiting(agent, timers, events)
                return events
            if status == "active":
                self.mark_active(agent, timers, events)
                return events
            logger.debug("Unrecognized status %r for agent %d", status, agent.agent_id)

        text = record.get("text")
        if (rec_type == "user" or record.get("role") == "user") and isinstance(text, str):
            if text.strip():
                self.new_prompt(agent, timers, events)
            return events

        return self.fallback.handle_record(agent, record, timers)


def _tool_id(record: dict[str, Any]) -> str | None:
    tool_id = record.get("tool_id") or record.get("id")
    return tool_id if isinstance(tool_id, str) and tool_id else None


def _tool_input(record: dict[str, Any]) -> dict[str, Any]:
    for key in ("input", "arguments"):
        value = record.get(key)
        if isinstance(value, dict):
            return value
    return {}
