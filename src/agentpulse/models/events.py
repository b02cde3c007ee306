from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field


class _AgentEvent(BaseModel):
    """Fields shared by every normalized status event."""

    agent_id: int
    timestamp: datetime = Field(default_factory=datetime.now)


class ToolStarted(_AgentEvent):
    type: Literal["tool_started"] = "tool_started"
    tool_id: str
    tool_name: str
    status: str


class ToolFinished(_AgentEvent):
    type: Literal["tool_finished"] = "tool_finished"
    tool_id: str


class StatusActive(_AgentEvent):
    type: Literal["status_active"] = "status_active"


class StatusWaiting(_AgentEvent):
    type: Literal["status_waiting"] = "status_waiting"


class ToolsCleared(_AgentEvent):
    type: Literal["tools_cleared"] = "tools_cleared"


class PermissionRequested(_AgentEvent):
    """A non-exempt tool has been outstanding with no log activity."""

    type: Literal["permission_requested"] = "permission_requested"


class PermissionCleared(_AgentEvent):
    type: Literal["permission_cleared"] = "permission_cleared"


class AgentAdded(_AgentEvent):
    type: Literal["agent_added"] = "agent_added"
    log_file: Optional[str] = None


class AgentRemoved(_AgentEvent):
    type: Literal["agent_removed"] = "agent_removed"


AgentEvent = Union[
    ToolStarted,
    ToolFinished,
    StatusActive,
    StatusWaiting,
    ToolsCleared,
    PermissionRequested,
    PermissionCleared,
    AgentAdded,
    AgentRemoved,
]

EVENT_TYPES: tuple[str, ...] = (
    "tool_started",
    "tool_finished",
    "status_active",
    "status_waiting",
    "tools_cleared",
    "permission_requested",
    "permission_cleared",
    "agent_added",
    "agent_removed",
)
