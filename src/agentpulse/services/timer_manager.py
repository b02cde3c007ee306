from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class TimerKind(str, Enum):
    WAITING = "waiting"  # text-only reply, declare waiting unless more activity arrives
    PERMISSION = "permission"  # tool outstanding with no log activity
    TOOL_DONE = "tool_done"  # delayed ToolFinished, one per tool id


TimerKey = tuple[int, TimerKind, Optional[str]]


class TimerManager:
    """Per-agent one-shot timers on the event loop.

    Design:
    - One ``asyncio.TimerHandle`` per (agent id, kind, tool id) key.
    - Arming a key always cancels the handle already stored under it.
    - A handle removes itself from the table before its callback runs.
    - ``cancel_agent`` cancels everything keyed to an agent synchronously.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop
        self._handles: dict[TimerKey, asyncio.TimerHandle] = {}

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def arm(
        self,
        agent_id: int,
        kind: TimerKind,
        delay: float,
        callback: Callable[[], None],
        tool_id: str | None = None,
    ) -> None:
        """Start (or restart) the timer for this key."""
        key: TimerKey = (agent_id, kind, tool_id)
        self.cancel(agent_id, kind, tool_id)
        self._handles[key] = self.loop.call_later(max(0.0, delay), self._fire, key, callback)

    def cancel(self, agent_id: int, kind: TimerKind, tool_id: str | None = None) -> bool:
        handle = self._handles.pop((agent_id, kind, tool_id), None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_agent(self, agent_id: int) -> int:
        """Cancel every timer of every kind for an agent."""
        keys = [key for key in self._handles if key[0] == agent_id]
        for key in keys:
            self._handles.pop(key).cancel()
        if keys:
            logger.debug("Cancelled %d timers for agent %d", len(keys), agent_id)
        return len(keys)

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def is_armed(self, agent_id: int, kind: TimerKind, tool_id: str | None = None) -> bool:
        return (agent_id, kind, tool_id) in self._handles

    def pending(self, agent_id: int | None = None) -> int:
        if agent_id is None:
            return len(self._handles)
        return sum(1 for key in self._handles if key[0] == agent_id)

    def for_agent(
        self,
        agent_id: int,
        *,
        on_waiting: Callable[[int], None],
        on_permission: Callable[[int], None],
        on_tool_done: Callable[[int, str], None],
        text_idle_delay: float,
        permission_delay: float,
        tool_done_delay: float,
    ) -> AgentTimers:
        return AgentTimers(
            self,
            agent_id,
            on_waiting=on_waiting,
            on_permission=on_permission,
            on_tool_done=on_tool_done,
            text_idle_delay=text_idle_delay,
            permission_delay=permission_delay,
            tool_done_delay=tool_done_delay,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _fire(self, key: TimerKey, callback: Callable[[], None]) -> None:
        self._handles.pop(key, None)
        try:
            callback()
        except Exception:
            logger.exception("Timer %s for agent %d failed", key[1].value, key[0])


class AgentTimers:
    """The timer operations a parser may perform for one agent."""

    def __init__(
        self,
        manager: TimerManager,
        agent_id: int,
        *,
        on_waiting: Callable[[int], None],
        on_permission: Callable[[int], None],
        on_tool_done: Callable[[int, str], None],
        text_idle_delay: float,
        permission_delay: float,
        tool_done_delay: float,
    ):
        self.manager = manager
        self.agent_id = agent_id
        self._on_waiting = on_waiting
        self._on_permission = on_permission
        self._on_tool_done = on_tool_done
        self.text_idle_delay = text_idle_delay
        self.permission_delay = permission_delay
        self.tool_done_delay = tool_done_delay

    def arm_waiting(self) -> None:
        self.manager.arm(
            self.agent_id,
            TimerKind.WAITING,
            self.text_idle_delay,
            lambda: self._on_waiting(self.agent_id),
        )

    def cancel_waiting(self) -> None:
        self.manager.cancel(self.agent_id, TimerKind.WAITING)

    def arm_permission(self) -> None:
        self.manager.arm(
            self.agent_id,
            TimerKind.PERMISSION,
            self.permission_delay,
            lambda: self._on_permission(self.agent_id),
        )

    def cancel_permission(self) -> None:
        self.manager.cancel(self.agent_id, TimerKind.PERMISSION)

    def finish_tool_later(self, tool_id: str) -> None:
        self.manager.arm(
            self.agent_id,
            TimerKind.TOOL_DONE,
            self.tool_done_delay,
            lambda: self._on_tool_done(self.agent_id, tool_id),
            tool_id=tool_id,
        )
