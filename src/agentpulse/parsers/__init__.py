from agentpulse.models.agent import Provider
from agentpulse.parsers.base import TranscriptParser, clear_activity
from agentpulse.parsers.claude import ClaudeParser
from agentpulse.parsers.codex import CodexParser
from agentpulse.parsers.formatting import PERMISSION_EXEMPT_TOOLS, format_tool_status


def default_parsers() -> dict[Provider, TranscriptParser]:
    """One parser instance per provider; parsers keep no per-agent state."""
    claude = ClaudeParser()
    return {Provider.CLAUDE: claude, Provider.CODEX: CodexParser(fallback=claude)}


__all__ = [
    "TranscriptParser",
    "ClaudeParser",
    "CodexParser",
    "PERMISSION_EXEMPT_TOOLS",
    "clear_activity",
    "default_parsers",
    "format_tool_status",
]
