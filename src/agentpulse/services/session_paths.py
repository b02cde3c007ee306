from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from agentpulse.models.agent import Provider
from agentpulse.utils.config import Config

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = Provider.CLAUDE
SESSION_SUFFIX = ".jsonl"


@dataclass(frozen=True)
class ProviderConfig:
    """Where a provider writes its transcripts."""

    provider: Provider
    display_name: str
    session_root: Path
    # Provider A names the file after the pre-supplied session id; B picks its own name
    names_file_by_session_id: bool

    def project_dir(self, workspace_path: str | Path) -> Path:
        return self.session_root / sanitize_workspace_path(workspace_path)

    def expected_session_file(self, project_dir: str | Path, session_id: str) -> Path | None:
        if not self.names_file_by_session_id:
            return None
        return Path(project_dir) / f"{session_id}{SESSION_SUFFIX}"


def sanitize_workspace_path(workspace_path: str | Path) -> str:
    """Encode a working directory the way agents name their project log dirs."""
    return re.sub(r"[:\\/]", "-", str(workspace_path))


def resolve_provider(name: str | Provider | None) -> Provider:
    """Map a provider name to a Provider, defaulting unknown names to Claude."""
    if isinstance(name, Provider):
        return name
    if name and name.strip().lower() == Provider.CODEX.value:
        return Provider.CODEX
    return DEFAULT_PROVIDER


def provider_configs(config: Config) -> dict[Provider, ProviderConfig]:
    return {
        Provider.CLAUDE: ProviderConfig(
            provider=Provider.CLAUDE,
            display_name="Claude Code",
            session_root=config.claude_projects_root,
            names_file_by_session_id=True,
        ),
        Provider.CODEX: ProviderConfig(
            provider=Provider.CODEX,
            display_name="Codex",
            session_root=config.codex_projects_root,
            names_file_by_session_id=False,
        ),
    }


def get_provider_config(provider: str | Provider, config: Config) -> ProviderConfig:
    return provider_configs(config)[resolve_provider(provider)]


def list_session_files(directory: str | Path) -> list[Path]:
    """Return the transcript files directly inside ``directory``.

    Raises OSError if the directory cannot be listed.
    """
    directory = Path(directory)
    return [
        directory / entry
        for entry in os.listdir(directory)
        if entry.endswith(SESSION_SUFFIX) and (directory / entry).is_file()
    ]


def newest_first(paths: list[Path], mtime: Callable[[Path], float] | None = None) -> list[Path]:
    """Sort by modification time, newest first; ties and vanished files sort by name."""
    mtime = mtime or _safe_mtime
    return sorted(paths, key=lambda p: (-mtime(p), str(p)))


def _safe_mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0
