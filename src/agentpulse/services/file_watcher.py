from __future__ import annotations

import asyncio
import logging
from typing import Callable

from watchfiles import awatch

logger = logging.getLogger(__name__)


class FileWatcher:
    """Trigger sources for tailing: change notifications, a backup poll, and wait-for-file.

    Change notifications come from ``watchfiles`` and are best effort; the
    fixed-interval poll runs alongside them so a missed notification only
    delays an update. Every trigger calls the same ``on_change`` callback,
    which must be safe to call when nothing changed.
    """

    def __init__(
        self,
        poll_interval: float = 1.0,
        file_poll_interval: float = 1.0,
        use_file_events: bool = True,
        debounce_ms: int = 50,
    ):
        self.poll_interval = poll_interval
        self.file_poll_interval = file_poll_interval
        self.use_file_events = use_file_events
        self.debounce_ms = debounce_ms
        self._watch_tasks: dict[int, list[asyncio.Task[None]]] = {}
        self._stop_events: dict[int, asyncio.Event] = {}
        self._wait_tasks: dict[int, asyncio.Task[None]] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def watch(self, agent_id: int, path: str, on_change: Callable[[], None]) -> None:
        """Start watching ``path`` for an agent, replacing any previous watch."""
        self.stop_watching(agent_id)
        tasks = [
            asyncio.create_task(
                self._poll_loop(agent_id, on_change), name=f"agentpulse-poll-{agent_id}"
            )
        ]
        if self.use_file_events:
            stop_event = asyncio.Event()
            self._stop_events[agent_id] = stop_event
            tasks.append(
                asyncio.create_task(
                    self._event_loop(agent_id, path, on_change, stop_event),
                    name=f"agentpulse-watch-{agent_id}",
                )
            )
        self._watch_tasks[agent_id] = tasks
        logger.debug("Watching %s for agent %d", path, agent_id)

    def wait_for(self, agent_id: int, check: Callable[[], bool]) -> None:
        """Call ``check`` every file_poll_interval until it returns True."""
        self.stop_waiting(agent_id)
        self._wait_tasks[agent_id] = asyncio.create_task(
            self._wait_loop(agent_id, check), name=f"agentpulse-wait-{agent_id}"
        )

    def stop_watching(self, agent_id: int) -> None:
        stop_event = self._stop_events.pop(agent_id, None)
        if stop_event is not None:
            stop_event.set()
        for task in self._watch_tasks.pop(agent_id, []):
            task.cancel()

    def stop_waiting(self, agent_id: int) -> None:
        task = self._wait_tasks.pop(agent_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def cancel(self, agent_id: int) -> None:
        """Cancel every watch and wait task for an agent."""
        self.stop_watching(agent_id)
        self.stop_waiting(agent_id)

    def cancel_all(self) -> None:
        for agent_id in list(self._watch_tasks):
            self.stop_watching(agent_id)
        for agent_id in list(self._wait_tasks):
            self.stop_waiting(agent_id)

    def watching(self, agent_id: int) -> bool:
        return agent_id in self._watch_tasks

    def waiting(self, agent_id: int) -> bool:
        return agent_id in self._wait_tasks

    # ------------------------------------------------------------------
    # Internal loops
    # ------------------------------------------------------------------

    async def _poll_loop(self, agent_id: int, on_change: Callable[[], None]) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                on_change()
            except Exception:
                logger.exception("Poll tail failed for agent %d", agent_id)

    async def _event_loop(
        self,
        agent_id: int,
        path: str,
        on_change: Callable[[], None],
        stop_event: asyncio.Event,
    ) -> None:
        step_ms = max(50, self.debounce_ms)
        try:
            async for changes in awatch(
                path,
                debounce=self.debounce_ms,
                step=step_ms,
                stop_event=stop_event,
                rust_timeout=max(250, step_ms),
                yield_on_timeout=True,
                recursive=False,
            ):
                if stop_event.is_set():
                    break
                if not changes:
                    continue
                try:
                    on_change()
                except Exception:
                    logger.exception("Change tail failed for agent %d", agent_id)
        except (OSError, RuntimeError) as e:
            # Polling keeps the agent live
            logger.info("File events unavailable for %s: %s", path, e)

    async def _wait_loop(self, agent_id: int, check: Callable[[], bool]) -> None:
        while True:
            try:
                if check():
                    break
            except Exception:
                logger.exception("Waiting for log file failed for agent %d", agent_id)
            await asyncio.sleep(self.file_poll_interval)
        if self._wait_tasks.get(agent_id) is asyncio.current_task():
            del self._wait_tasks[agent_id]
