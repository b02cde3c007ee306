from __future__ import annotations

import asyncio
import logging
import signal
from types import TracebackType

from agentpulse.services.directory_scanner import DirectoryScanner
from agentpulse.services.event_bus import EventBus
from agentpulse.services.file_watcher import FileWatcher
from agentpulse.services.registry import AgentRegistry
from agentpulse.services.timer_manager import TimerManager
from agentpulse.utils.config import Config, get_config

logger = logging.getLogger(__name__)


class Monitor:
    """Wires the tailing engine together around one EventBus.

    Use as an async context manager: the directory scanner starts on entry,
    and every watcher, timer and pending delivery is shut down on exit.
    """

    def __init__(self, config: Config | None = None):
        self.config = config or get_config()
        self.bus = EventBus()
        self.timers = TimerManager()
        self.watcher = FileWatcher(
            poll_interval=self.config.poll_interval,
            file_poll_interval=self.config.file_poll_interval,
            use_file_events=self.config.use_file_events,
            debounce_ms=self.config.watch_debounce_ms,
        )
        self.scanner = DirectoryScanner(scan_interval=self.config.scan_interval)
        self.registry = AgentRegistry(
            self.bus,
            self.config,
            timers=self.timers,
            watcher=self.watcher,
            scanner=self.scanner,
        )

    async def __aenter__(self) -> Monitor:
        self.scanner.start()
        logger.info("Monitor started")
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.registry.close()
        await self.bus.drain()
        logger.info("Monitor stopped")

    async def run_until_stopped(self, stop_event: asyncio.Event | None = None) -> None:
        """Block until ``stop_event`` is set or SIGINT/SIGTERM arrives."""
        stop_event = stop_event or asyncio.Event()
        loop = asyncio.get_running_loop()

        installed: list[signal.Signals] = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                pass

        try:
            await stop_event.wait()
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)
