"""agentpulse: live status of coding agents from their JSONL transcripts."""

__version__ = "0.1.0"
