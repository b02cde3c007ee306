from __future__ import annotations

import logging
import os
import threading
import time

from agentpulse.errors import AgentNotFoundError, DuplicateAgentError
from agentpulse.models.agent import AgentRecord, Provider, TurnState
from agentpulse.models.events import (
    AgentAdded,
    AgentEvent,
    AgentRemoved,
    PermissionCleared,
    PermissionRequested,
    StatusWaiting,
    ToolFinished,
    ToolStarted,
)
from agentpulse.parsers import TranscriptParser, clear_activity, default_parsers
from agentpulse.parsers.formatting import is_permission_exempt
from agentpulse.services.directory_scanner import DirectoryScanner, Reassignment
from agentpulse.services.event_bus import EventSink
from agentpulse.services.file_watcher import FileWatcher
from agentpulse.services.log_tailer import LogTailer
from agentpulse.services.session_paths import get_provider_config, resolve_provider
from agentpulse.services.timer_manager import AgentTimers, TimerManager
from agentpulse.utils.config import Config

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Owns every tracked agent's record and is the only code that mutates one.

    Design:
    - One AgentRecord per agent id, in a dict guarded by a lock.
    - Tail, parse and timer callbacks all run on the event loop, so two
      callbacks for the same agent never run at once; a re-entrant tail of
      an agent already being tailed is a no-op.
    - Removing an agent cancels its watchers and timers before the record
      disappears; late callbacks find no record and return.
    """

    def __init__(
        self,
        sink: EventSink,
        config: Config,
        *,
        tailer: LogTailer | None = None,
        timers: TimerManager | None = None,
        watcher: FileWatcher | None = None,
        scanner: DirectoryScanner | None = None,
        parsers: dict[Provider, TranscriptParser] | None = None,
    ):
        self.sink = sink
        self.config = config
        self.tailer = tailer or LogTailer()
        self.timers = timers or TimerManager()
        self.watcher = watcher or FileWatcher(
            poll_interval=config.poll_interval,
            file_poll_interval=config.file_poll_interval,
            use_file_events=config.use_file_events,
            debounce_ms=config.watch_debounce_ms,
        )
        self.scanner = scanner or DirectoryScanner(scan_interval=config.scan_interval)
        if self.scanner.on_reassign is None:
            self.scanner.on_reassign = self._on_reassign
        self.parsers = parsers or default_parsers()
        self._agents: dict[int, AgentRecord] = {}
        self._mu = threading.RLock()
        self._next_id = 1
        self._tailing: set[int] = set()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, agent_id: int) -> AgentRecord:
        with self._mu:
            agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def agents(self) -> list[AgentRecord]:
        with self._mu:
            return [self._agents[agent_id] for agent_id in sorted(self._agents)]

    def __contains__(self, agent_id: object) -> bool:
        with self._mu:
            return agent_id in self._agents

    def __len__(self) -> int:
        with self._mu:
            return len(self._agents)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def register_agent(
        self,
        provider: str | Provider,
        project_dir: str,
        *,
        session_id: str | None = None,
        log_file: str | None = None,
    ) -> AgentRecord:
        """Track a newly launched agent, before its log file necessarily exists.

        With a session id (Claude) the exact file name is known up front and
        pre-registered so the scanner never mistakes it for a cleared session.
        Otherwise the file is claimed from the project directory once it appears.
        """
        provider = resolve_provider(provider)
        project_dir = os.path.abspath(project_dir)
        expected = log_file
        if expected is None and session_id:
            expected_path = get_provider_config(provider, self.config).expected_session_file(
                project_dir, session_id
            )
            expected = str(expected_path) if expected_path else None
        if expected is not None:
            expected = os.path.abspath(expected)

        self.scanner.track(project_dir)
        if expected is not None:
            self.scanner.pre_register(expected)

        with self._mu:
            agent_id = self._next_id
            self._next_id += 1
            agent = AgentRecord(
                agent_id=agent_id,
                provider=provider,
                project_dir=project_dir,
                log_file_path=expected,
            )
            self._agents[agent_id] = agent

        self.scanner.set_active_agent(agent_id)
        logger.info(
            "Agent %d registered (%s, %s)", agent_id, provider.value, expected or project_dir
        )
        self._emit(AgentAdded(agent_id=agent_id, log_file=expected))

        launched_at = time.time()
        if not self._look_for_file(agent_id, launched_at):
            self.watcher.wait_for(agent_id, lambda: self._look_for_file(agent_id, launched_at))
        self.scanner.start()
        return agent

    def restore_agent(
        self,
        agent_id: int,
        provider: str | Provider,
        project_dir: str,
        log_file: str,
    ) -> AgentRecord:
        """Re-attach an agent the embedding application already knew about.

        Reading resumes at the current end of the file; history is not replayed.
        """
        provider = resolve_provider(provider)
        project_dir = os.path.abspath(project_dir)
        log_file = os.path.abspath(log_file)

        with self._mu:
            if agent_id in self._agents:
                raise DuplicateAgentError(agent_id)
            agent = AgentRecord(
                agent_id=agent_id,
                provider=provider,
                project_dir=project_dir,
                log_file_path=log_file,
            )
            self._agents[agent_id] = agent
            self._next_id = max(self._next_id, agent_id + 1)

        self.scanner.track(project_dir)
        self.scanner.pre_register(log_file)
        logger.info("Agent %d restored (%s, %s)", agent_id, provider.value, log_file)
        self._emit(AgentAdded(agent_id=agent_id, log_file=log_file))

        if not self._resume_at_end(agent_id):
            self.watcher.wait_for(agent_id, lambda: self._resume_at_end(agent_id))
        self.scanner.start()
        return agent

    def remove_agent(self, agent_id: int) -> bool:
        """Stop tracking an agent; every watcher and timer for it is cancelled first."""
        with self._mu:
            if agent_id not in self._agents:
                return False
            self.watcher.cancel(agent_id)
            self.timers.cancel_agent(agent_id)
            del self._agents[agent_id]
        self.scanner.clear_active_agent(agent_id)
        logger.info("Agent %d removed", agent_id)
        self._emit(AgentRemoved(agent_id=agent_id))
        return True

    def set_active_agent(self, agent_id: int | None) -> None:
        """Designate the agent currently in the foreground (or none)."""
        if agent_id is not None and agent_id not in self:
            raise AgentNotFoundError(agent_id)
        self.scanner.set_active_agent(agent_id)

    async def close(self) -> None:
        await self.scanner.stop()
        with self._mu:
            self.watcher.cancel_all()
            self.timers.cancel_all()
        logger.info("Agent registry closed (%d agents)", len(self))

    # ------------------------------------------------------------------
    # Tailing
    # ------------------------------------------------------------------

    def tail_agent(self, agent_id: int) -> list[AgentEvent]:
        """Read an agent's new lines, parse them and emit the resulting events.

        Returns the events emitted immediately. Safe to call redundantly.
        """
        with self._mu:
            agent = self._agents.get(agent_id)
            if agent is None or agent_id in self._tailing:
                return []
            self._tailing.add(agent_id)

        try:
            lines = self.tailer.read_new_lines(agent)
            if not any(line.strip() for line in lines):
                return []

            timers = self._timers_for(agent_id)
            events: list[AgentEvent] = []

            # Any new activity settles a pending debounce or permission prompt
            timers.cancel_waiting()
            timers.cancel_permission()
            if agent.permission_pending:
                agent.permission_pending = False
                events.append(PermissionCleared(agent_id=agent_id))

            parser = self.parsers[agent.provider]
            for line in lines:
                try:
                    events.extend(parser.parse_line(agent, line, timers))
                except Exception:
                    logger.exception("Skipping unparseable record for agent %d", agent_id)

            if any(not is_permission_exempt(t.name) for t in agent.active_tools.values()):
                timers.arm_permission()

            for event in events:
                self._emit(event)
            return events
        finally:
            self._tailing.discard(agent_id)

    def reassign_agent(self, agent_id: int, new_path: str) -> bool:
        """Move an agent to a different log file and read it from the start."""
        with self._mu:
            agent = self._agents.get(agent_id)
            if agent is None:
                logger.warning("Cannot reassign unknown agent %d to %s", agent_id, new_path)
                return False
            self.watcher.cancel(agent_id)
            self.timers.cancel_agent(agent_id)
            events = clear_activity(agent, self._timers_for(agent_id))
            old_path = agent.log_file_path
            agent.log_file_path = os.path.abspath(new_path)
            agent.reset_tail()

        self.scanner.pre_register(agent.log_file_path)
        logger.info(
            "Agent %d reassigned from %s to %s",
            agent_id,
            os.path.basename(old_path) if old_path else None,
            os.path.basename(agent.log_file_path),
        )
        for event in events:
            self._emit(event)
        self._start_watching(agent_id)
        return True

    def replay_status(self) -> list[AgentEvent]:
        """Re-emit the current tool and waiting state of every agent for a new sink."""
        events: list[AgentEvent] = []
        for agent in self.agents():
            for tool_id, tool in agent.active_tools.items():
                events.append(
                    ToolStarted(
                        agent_id=agent.agent_id,
                        tool_id=tool_id,
                        tool_name=tool.name,
                        status=tool.status,
                    )
                )
            if agent.turn_state is TurnState.WAITING:
                events.append(StatusWaiting(agent_id=agent.agent_id))
        for event in events:
            self._emit(event)
        return events

    # ------------------------------------------------------------------
    # Timer callbacks
    # ------------------------------------------------------------------

    def _on_waiting_timer(self, agent_id: int) -> None:
        with self._mu:
            agent = self._agents.get(agent_id)
        if agent is None:
            return
        agent.turn_state = TurnState.WAITING
        self._emit(StatusWaiting(agent_id=agent_id))

    def _on_permission_timer(self, agent_id: int) -> None:
        with self._mu:
            agent = self._agents.get(agent_id)
        if agent is None or agent.permission_pending:
            return
        if any(not is_permission_exempt(t.name) for t in agent.active_tools.values()):
            agent.permission_pending = True
            logger.info("Agent %d may be waiting on a permission prompt", agent_id)
            self._emit(PermissionRequested(agent_id=agent_id))

    def _on_tool_done(self, agent_id: int, tool_id: str) -> None:
        if agent_id not in self:
            return
        self._emit(ToolFinished(agent_id=agent_id, tool_id=tool_id))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _timers_for(self, agent_id: int) -> AgentTimers:
        return self.timers.for_agent(
            agent_id,
            on_waiting=self._on_waiting_timer,
            on_permission=self._on_permission_timer,
            on_tool_done=self._on_tool_done,
            text_idle_delay=self.config.text_idle_delay,
            permission_delay=self.config.permission_delay,
            tool_done_delay=self.config.tool_done_delay,
        )

    def _start_watching(self, agent_id: int) -> None:
        with self._mu:
            agent = self._agents.get(agent_id)
        if agent is None or not agent.log_file_path:
            return
        self.watcher.watch(agent_id, agent.log_file_path, lambda: self.tail_agent(agent_id))
        self.tail_agent(agent_id)

    def _look_for_file(self, agent_id: int, launched_at: float) -> bool:
        """One step of waiting for a new agent's log file; True when done."""
        with self._mu:
            agent = self._agents.get(agent_id)
        if agent is None:
            return True

        if not agent.log_file_path:
            candidate = self.scanner.claim_session_file(agent.project_dir, launched_at)
            if candidate is None:
                return False
            agent.log_file_path = candidate
            logger.info("Agent %d adopted session file %s", agent_id, os.path.basename(candidate))

        if not os.path.exists(agent.log_file_path):
            return False
        logger.info("Agent %d found log file %s", agent_id, os.path.basename(agent.log_file_path))
        self._start_watching(agent_id)
        return True

    def _resume_at_end(self, agent_id: int) -> bool:
        with self._mu:
            agent = self._agents.get(agent_id)
        if agent is None:
            return True
        if not self.tailer.seek_to_end(agent):
            return False
        self.watcher.watch(agent_id, agent.log_file_path, lambda: self.tail_agent(agent_id))
        return True

    def _on_reassign(self, reassignment: Reassignment) -> None:
        with self._mu:
            agent = self._agents.get(reassignment.agent_id)
        if agent is None:
            logger.info(
                "Active agent %d is gone, %s stays unattributed",
                reassignment.agent_id,
                os.path.basename(reassignment.path),
            )
            return
        if os.path.abspath(agent.project_dir) != reassignment.directory:
            logger.info(
                "Agent %d does not log to %s, leaving %s unattributed",
                reassignment.agent_id,
                reassignment.directory,
                os.path.basename(reassignment.path),
            )
            return
        self.reassign_agent(reassignment.agent_id, reassignment.path)

    def _emit(self, event: AgentEvent) -> None:
        try:
            self.sink.emit(event)
        except Exception:
            logger.exception("Event sink failed on %s for agent %d", event.type, event.agent_id)
