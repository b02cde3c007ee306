from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Provider(str, Enum):
    """Transcript vocabulary an agent writes."""

    CLAUDE = "claude"
    CODEX = "codex"


class TurnState(str, Enum):
    ACTIVE = "active"
    WAITING = "waiting"


class ToolInfo(BaseModel):
    """An outstanding tool invocation."""

    name: str
    status: str


class AgentRecord(BaseModel):
    """Mutable tail and status state for one tracked agent."""

    agent_id: int
    provider: Provider = Provider.CLAUDE
    project_dir: str
    log_file_path: Optional[str] = None
    read_offset: int = 0
    line_remainder: bytes = b""
    file_identity: Optional[tuple[int, int]] = None  # (st_dev, st_ino)
    active_tools: dict[str, ToolInfo] = Field(default_factory=dict)
    turn_state: TurnState = TurnState.ACTIVE
    permission_pending: bool = False
    had_tools_this_turn: bool = False

    @property
    def is_waiting(self) -> bool:
        return self.turn_state is TurnState.WAITING

    def reset_tail(self) -> None:
        """Forget the read position so the next tail starts at byte 0."""
        self.read_offset = 0
        self.line_remainder = b""
        self.file_identity = None
