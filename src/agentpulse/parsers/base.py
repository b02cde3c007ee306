"""Shared transcript-parsing machinery.

A parser turns one complete transcript line into normalized events for one
agent. It mutates the agent record's tool table and turn state, arms or
cancels that agent's timers, and returns the events to emit right away.
``ToolFinished`` is never returned: it is scheduled through the timers so it
reaches the sink a short while after the completion record.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from agentpulse.models.agent import AgentRecord, Provider, ToolInfo, TurnState
from agentpulse.models.events import (
    AgentEvent,
    PermissionCleared,
    StatusActive,
    StatusWaiting,
    ToolsCleared,
    ToolStarted,
)
from agentpulse.parsers.formatting import format_tool_status, is_permission_exempt
from agentpulse.services.timer_manager import AgentTimers

logger = logging.getLogger(__name__)


class TranscriptParser:
    """Base class for provider parsers."""

    provider: Provider

    def parse_line(
        self, agent: AgentRecord, line: str, timers: AgentTimers
    ) -> list[AgentEvent]:
        """Parse one line; malformed lines yield no events."""
        line = line.strip()
        if not line:
            return []
        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            logger.debug("Skipping malformed line for agent %d: %s", agent.agent_id, e)
            return []
        if not isinstance(record, dict):
            return []
        return self.handle_record(agent, record, timers)

    def handle_record(
        self, agent: AgentRecord, record: dict[str, Any], timers: AgentTimers
    ) -> list[AgentEvent]:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Shared transitions
    # ------------------------------------------------------------------

    def start_tool(
        self,
        agent: AgentRecord,
        tool_id: str,
        tool_name: str,
        tool_input: Mapping[str, Any] | None,
        timers: AgentTimers,
        events: list[AgentEvent],
    ) -> bool:
        """Record a tool invocation; returns False for an id that is already active."""
        if tool_id in agent.active_tools:
            return False

        timers.cancel_waiting()
        if not any(isinstance(e, StatusActive) for e in events):
            events.append(StatusActive(agent_id=agent.agent_id))
        agent.turn_state = TurnState.ACTIVE
        agent.permission_pending = False
        agent.had_tools_this_turn = True

        status = format_tool_status(tool_name, tool_input)
        agent.active_tools[tool_id] = ToolInfo(name=tool_name, status=status)
        events.append(
            ToolStarted(
                agent_id=agent.agent_id, tool_id=tool_id, tool_name=tool_name, status=status
            )
        )
        if not is_permission_exempt(tool_name):
            timers.arm_permission()
        return True

    def finish_tool(
        self,
        agent: AgentRecord,
        tool_id: str,
        timers: AgentTimers,
        events: list[AgentEvent],
    ) -> bool:
        """Complete a started tool; ids that were never started are ignored."""
        if agent.active_tools.pop(tool_id, None) is None:
            return False

        timers.finish_tool_later(tool_id)
        if not agent.active_tools:
            timers.cancel_permission()
            self._clear_permission(agent, events)
            agent.had_tools_this_turn = False
            agent.turn_state = TurnState.WAITING
            events.append(StatusWaiting(agent_id=agent.agent_id))
        return True

    def end_turn(
        self, agent: AgentRecord, timers: AgentTimers, events: list[AgentEvent]
    ) -> None:
        timers.cancel_waiting()
        timers.cancel_permission()
        if agent.active_tools:
            agent.active_tools.clear()
            events.append(ToolsCleared(agent_id=agent.agent_id))
        agent.turn_state = TurnState.WAITING
        agent.permission_pending = False
        agent.had_tools_this_turn = False
        events.append(StatusWaiting(agent_id=agent.agent_id))

    def mark_waiting(
        self, agent: AgentRecord, timers: AgentTimers, events: list[AgentEvent]
    ) -> None:
        timers.cancel_permission()
        self._clear_permission(agent, events)
        agent.turn_state = TurnState.WAITING
        events.append(StatusWaiting(agent_id=agent.agent_id))

    def mark_active(
        self, agent: AgentRecord, timers: AgentTimers, events: list[AgentEvent]
    ) -> None:
        timers.cancel_waiting()
        agent.turn_state = TurnState.ACTIVE
        events.append(StatusActive(agent_id=agent.agent_id))

    def new_prompt(
        self, agent: AgentRecord, timers: AgentTimers, events: list[AgentEvent]
    ) -> None:
        timers.cancel_waiting()
        events.extend(clear_activity(agent, timers))

    def _clear_permission(self, agent: AgentRecord, events: list[AgentEvent]) -> None:
        if agent.permission_pending:
            agent.permission_pending = False
            events.append(PermissionCleared(agent_id=agent.agent_id))


def clear_activity(agent: AgentRecord, timers: AgentTimers) -> list[AgentEvent]:
    """Forget every outstanding tool and start a fresh, active turn."""
    timers.cancel_permission()
    agent.active_tools.clear()
    agent.had_tools_this_turn = False
    agent.permission_pending = False
    agent.turn_state = TurnState.ACTIVE
    return [ToolsCleared(agent_id=agent.agent_id), StatusActive(agent_id=agent.agent_id)]
