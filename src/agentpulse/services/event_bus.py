from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, Protocol

from agentpulse.models.events import AgentEvent

logger = logging.getLogger(__name__)

Listener = Callable[[AgentEvent], Coroutine[Any, Any, None]]


class EventSink(Protocol):
    """Where the engine pushes normalized events. Delivery is fire-and-forget."""

    def emit(self, event: AgentEvent) -> None: ...


class EventBus:
    """Simple async pub/sub event bus for agent status events.

    Listeners subscribe to specific event types (or "*" for all events)
    and receive the event model whenever the engine emits one.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}
        self._pending: set[asyncio.Task[None]] = set()

    def subscribe(self, event_type: str, listener: Listener) -> None:
        self._listeners.setdefault(event_type, []).append(listener)

    def unsubscribe(self, event_type: str, listener: Listener) -> None:
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event: AgentEvent) -> None:
        """Schedule delivery of an event on the running loop and return immediately."""
        if not self._targets(event.type):
            return
        task = asyncio.get_running_loop().create_task(self.publish(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def publish(self, event: AgentEvent) -> None:
        """Deliver an event to all matching listeners."""
        targets = self._targets(event.type)
        if not targets:
            return

        results = await asyncio.gather(
            *(listener(event) for listener in targets),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error("Event listener error for %s: %s", event.type, result)

    async def drain(self) -> None:
        """Wait for every delivery scheduled by emit() so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _targets(self, event_type: str) -> list[Listener]:
        targets: list[Listener] = []
        targets.extend(self._listeners.get(event_type, []))
        targets.extend(self._listeners.get("*", []))
        return targets
