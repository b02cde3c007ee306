"""Detection of new transcript files in project log directories.

Clearing an agent's history starts a brand-new transcript file and the old
one simply stops growing. The scanner treats "a file nobody has seen before
appeared while an agent is in the foreground" as that agent moving to the
new file. This is a heuristic: when no agent is active, or several new files
show up in the same tick, the extra files are only recorded as known.
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from agentpulse.services.session_paths import list_session_files, newest_first

logger = logging.getLogger(__name__)

# Files modified this long before an agent launched are not its session
LAUNCH_MTIME_SLACK_SECONDS = 2.0


@dataclass(frozen=True)
class Reassignment:
    agent_id: int
    directory: str
    path: str


class DirectoryScanner:
    """Owns the known-files sets and the active-agent pointer.

    Both are the only state shared across agents; every read and write goes
    through one lock.
    """

    def __init__(
        self,
        scan_interval: float = 1.0,
        on_reassign: Callable[[Reassignment], object] | None = None,
    ):
        self.scan_interval = scan_interval
        self.on_reassign = on_reassign
        self._known: dict[str, set[str]] = {}
        self._active_agent_id: int | None = None
        self._mu = threading.Lock()
        self._task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic scan loop on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._scan_loop(), name="agentpulse-scan")
            logger.info("Directory scanner started (every %.1fs)", self.scan_interval)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Directory scanner stopped")

    # ------------------------------------------------------------------
    # Active agent
    # ------------------------------------------------------------------

    @property
    def active_agent_id(self) -> int | None:
        with self._mu:
            return self._active_agent_id

    def set_active_agent(self, agent_id: int | None) -> None:
        with self._mu:
            self._active_agent_id = agent_id

    def clear_active_agent(self, agent_id: int) -> None:
        """Drop the pointer if it still designates ``agent_id``."""
        with self._mu:
            if self._active_agent_id == agent_id:
                self._active_agent_id = None

    # ------------------------------------------------------------------
    # Known files
    # ------------------------------------------------------------------

    def track(self, directory: str | Path) -> bool:
        """Start tracking a directory, seeding it with the files already there.

        Returns False if the directory was already tracked.
        """
        key = _dir_key(directory)
        with self._mu:
            if key in self._known:
                return False
            self._known[key] = set()
        try:
            existing = list_session_files(key)
        except OSError as e:
            logger.debug("Cannot list %s yet: %s", key, e)
            existing = []
        with self._mu:
            self._known[key].update(str(p) for p in existing)
        logger.info("Tracking %s (%d existing sessions)", key, len(existing))
        return True

    def tracked_directories(self) -> list[str]:
        with self._mu:
            return list(self._known)

    def pre_register(self, path: str | Path) -> None:
        """Mark an expected session file as known before its agent writes it."""
        path = os.path.abspath(path)
        with self._mu:
            self._known.setdefault(os.path.dirname(path), set()).add(path)

    def is_known(self, path: str | Path) -> bool:
        path = os.path.abspath(path)
        with self._mu:
            return path in self._known.get(os.path.dirname(path), set())

    def known_files(self, directory: str | Path) -> set[str]:
        with self._mu:
            return set(self._known.get(_dir_key(directory), set()))

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def scan(self, directory: str | Path) -> Reassignment | None:
        """Record unseen files in ``directory`` and attribute at most one to the active agent."""
        key = _dir_key(directory)
        try:
            current = list_session_files(key)
        except OSError as e:
            logger.debug("Scan of %s failed, retrying next tick: %s", key, e)
            return None

        with self._mu:
            known = self._known.setdefault(key, set())
            unseen = [p for p in current if str(p) not in known]
            if not unseen:
                return None
            known.update(str(p) for p in unseen)
            agent_id = self._active_agent_id

        ordered = newest_first(unseen)
        if agent_id is None:
            logger.info(
                "New session file(s) %s with no active agent, leaving unattributed",
                [p.name for p in ordered],
            )
            return None

        chosen = ordered[0]
        if len(ordered) > 1:
            logger.warning(
                "%d new session files in one scan of %s; attributing only %s",
                len(ordered),
                key,
                chosen.name,
            )
        logger.info("New session file %s attributed to agent %d", chosen.name, agent_id)
        return Reassignment(agent_id=agent_id, directory=key, path=str(chosen))

    def scan_all(self) -> list[Reassignment]:
        """Scan every tracked directory and hand each reassignment to ``on_reassign``."""
        results: list[Reassignment] = []
        for directory in self.tracked_directories():
            reassignment = self.scan(directory)
            if reassignment is None:
                continue
            results.append(reassignment)
            if self.on_reassign is not None:
                self.on_reassign(reassignment)
        return results

    def claim_session_file(self, directory: str | Path, launched_at: float) -> str | None:
        """Pick the session file of an agent launched without a known file name.

        Prefers the newest unseen file; otherwise the newest file modified
        since shortly before ``launched_at`` (epoch seconds). The chosen file
        becomes known in the same operation.
        """
        key = _dir_key(directory)
        try:
            entries = [(p, p.stat().st_mtime) for p in list_session_files(key)]
        except OSError:
            return None
        mtimes = dict(entries)

        with self._mu:
            known = self._known.setdefault(key, set())
            unseen = [p for p, _ in entries if str(p) not in known]
            if unseen:
                chosen = newest_first(unseen, mtimes.__getitem__)[0]
            else:
                recent = [
                    p for p, mtime in entries if mtime >= launched_at - LAUNCH_MTIME_SLACK_SECONDS
                ]
                if not recent:
                    return None
                chosen = newest_first(recent, mtimes.__getitem__)[0]
            known.add(str(chosen))
        return str(chosen)

    # ------------------------------------------------------------------
    # Internal loop
    # ------------------------------------------------------------------

    async def _scan_loop(self) -> None:
        while True:
            await asyncio.sleep(self.scan_interval)
            try:
                self.scan_all()
            except Exception:
                logger.exception("Directory scan failed")


def _dir_key(directory: str | Path) -> str:
    return os.path.abspath(directory)
