from __future__ import annotations


class AgentPulseError(Exception):
    """Base class for errors raised at the agentpulse API boundary."""


class AgentNotFoundError(AgentPulseError, KeyError):
    """Raised when an agent id is not registered."""

    def __init__(self, agent_id: int):
        super().__init__(agent_id)
        self.agent_id = agent_id

    def __str__(self) -> str:
        return f"agent {self.agent_id} is not registered"


class DuplicateAgentError(AgentPulseError, ValueError):
    """Raised when registering an id that is already tracked."""

    def __init__(self, agent_id: int):
        super().__init__(f"agent {agent_id} is already registered")
        self.agent_id = agent_id
