from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: str) -> float:
    return float(os.environ.get(name, default))


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Config:
    """Central configuration loaded from environment variables."""

    # Session roots
    claude_projects_root: Path = field(
        default_factory=lambda: Path(
            os.environ.get("AGENTPULSE_CLAUDE_PROJECTS", "~/.claude/projects")
        ).expanduser()
    )
    codex_projects_root: Path = field(
        default_factory=lambda: Path(
            os.environ.get("AGENTPULSE_CODEX_PROJECTS", "~/.codex/projects")
        ).expanduser()
    )
    default_provider: str = field(
        default_factory=lambda: os.environ.get("AGENTPULSE_PROVIDER", "claude")
    )

    # Triggers
    poll_interval: float = field(
        default_factory=lambda: _env_float("AGENTPULSE_POLL_INTERVAL", "1.0")
    )
    file_poll_interval: float = field(
        default_factory=lambda: _env_float("AGENTPULSE_FILE_POLL_INTERVAL", "1.0")
    )
    scan_interval: float = field(
        default_factory=lambda: _env_float("AGENTPULSE_SCAN_INTERVAL", "1.0")
    )
    use_file_events: bool = field(
        default_factory=lambda: _env_bool("AGENTPULSE_FILE_EVENTS", "true")
    )
    watch_debounce_ms: int = field(
        default_factory=lambda: int(os.environ.get("AGENTPULSE_WATCH_DEBOUNCE_MS", "50"))
    )

    # Debounce / delay timers
    tool_done_delay: float = field(
        default_factory=lambda: _env_float("AGENTPULSE_TOOL_DONE_DELAY", "0.3")
    )
    permission_delay: float = field(
        default_factory=lambda: _env_float("AGENTPULSE_PERMISSION_DELAY", "7.0")
    )
    text_idle_delay: float = field(
        default_factory=lambda: _env_float("AGENTPULSE_TEXT_IDLE_DELAY", "2.0")
    )

    # Logging
    log_level: str = field(
        default_factory=lambda: os.environ.get("AGENTPULSE_LOG_LEVEL", "INFO")
    )


def get_config() -> Config:
    """Return a Config instance (singleton-friendly via module caching)."""
    return Config()
