from __future__ import annotations

import posixpath
from typing import Any, Mapping

BASH_COMMAND_DISPLAY_MAX_LENGTH = 30
TASK_DESCRIPTION_DISPLAY_MAX_LENGTH = 40

# Tools that never wait on an operator confirmation
PERMISSION_EXEMPT_TOOLS = frozenset({"Task", "AskUserQuestion"})


def format_tool_status(tool_name: str, tool_input: Mapping[str, Any] | None) -> str:
    """Human-readable status line for a tool invocation."""
    tool_input = tool_input or {}

    if tool_name == "Read":
        return f"Reading {_basename(tool_input.get('file_path'))}"
    if tool_name == "Edit":
        return f"Editing {_basename(tool_input.get('file_path'))}"
    if tool_name == "Write":
        return f"Writing {_basename(tool_input.get('file_path'))}"
    if tool_name == "Bash":
        command = _text(tool_input.get("command"))
        return f"Running: {_truncate(command, BASH_COMMAND_DISPLAY_MAX_LENGTH)}"
    if tool_name == "Glob":
        return "Searching files"
    if tool_name == "Grep":
        return "Searching code"
    if tool_name == "WebFetch":
        return "Fetching web content"
    if tool_name == "WebSearch":
        return "Searching the web"
    if tool_name == "Task":
        description = _text(tool_input.get("description"))
        if description:
            return f"Subtask: {_truncate(description, TASK_DESCRIPTION_DISPLAY_MAX_LENGTH)}"
        return "Running subtask"
    if tool_name == "AskUserQuestion":
        return "Waiting for your answer"
    if tool_name == "EnterPlanMode":
        return "Planning"
    if tool_name == "NotebookEdit":
        return "Editing notebook"
    return f"Using {tool_name}"


def is_permission_exempt(tool_name: str) -> bool:
    return tool_name in PERMISSION_EXEMPT_TOOLS


def _basename(value: Any) -> str:
    text = _text(value)
    # Windows paths show up in transcripts too
    return posixpath.basename(text.replace("\\", "/")) if text else ""


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[:limit] + "…"
    return text
