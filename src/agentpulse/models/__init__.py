from agentpulse.models.agent import AgentRecord, Provider, ToolInfo, TurnState
from agentpulse.models.events import (
    AgentAdded,
    AgentEvent,
    AgentRemoved,
    PermissionCleared,
    PermissionRequested,
    StatusActive,
    StatusWaiting,
    ToolFinished,
    ToolsCleared,
    ToolStarted,
)

__all__ = [
    "AgentRecord",
    "Provider",
    "ToolInfo",
    "TurnState",
    "AgentEvent",
    "AgentAdded",
    "AgentRemoved",
    "PermissionCleared",
    "PermissionRequested",
    "StatusActive",
    "StatusWaiting",
    "ToolFinished",
    "ToolsCleared",
    "ToolStarted",
]
