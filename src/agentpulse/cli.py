from __future__ import annotations

import asyncio
import dataclasses
import json
import os

import click

from agentpulse import __version__
from agentpulse.models.events import AgentEvent

PROVIDER_CHOICE = click.Choice(["claude", "codex"], case_sensitive=False)


@click.group()
@click.version_option(version=__version__, prog_name="agentpulse")
def main() -> None:
    """agentpulse: live status of coding agents, read from their transcripts."""


@main.command()
def version() -> None:
    """Print the version and exit."""
    click.echo(f"agentpulse {__version__}")


@main.command("project-dir")
@click.option("--provider", type=PROVIDER_CHOICE, default=None, help="Agent provider.")
@click.option(
    "--cwd",
    default=None,
    help="Working directory the agent runs in (defaults to the current one).",
)
def project_dir(provider: str | None, cwd: str | None) -> None:
    """Print the directory an agent's transcripts are written to."""
    from agentpulse.services.session_paths import get_provider_config
    from agentpulse.utils.config import get_config

    config = get_config()
    provider_config = get_provider_config(provider or config.default_provider, config)
    click.echo(str(provider_config.project_dir(os.path.abspath(cwd or os.getcwd()))))


def format_event(event: AgentEvent) -> str:
    """One console line for an event."""
    prefix = f"[agent {event.agent_id}]"
    if event.type == "tool_started":
        return f"{prefix} {event.status}  ({event.tool_id})"
    if event.type == "tool_finished":
        return f"{prefix} done {event.tool_id}"
    if event.type == "agent_added":
        return f"{prefix} tracking {event.log_file or '(waiting for session file)'}"
    return f"{prefix} {event.type.replace('_', ' ')}"


@main.command()
@click.option("--provider", type=PROVIDER_CHOICE, default=None, help="Agent provider.")
@click.option("--cwd", default=None, help="Working directory the agent runs in.")
@click.option("--session-id", default=None, help="Session id the agent was launched with.")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Transcript to follow instead of discovering one.",
)
@click.option(
    "--from-end/--from-start",
    default=False,
    show_default=True,
    help="With --log-file: skip history already in the file.",
)
@click.option("--json", "as_json", is_flag=True, help="Print events as JSON lines.")
@click.option(
    "--file-events/--no-file-events",
    default=None,
    help="Use filesystem notifications in addition to polling.",
)
def watch(
    provider: str | None,
    cwd: str | None,
    session_id: str | None,
    log_file: str | None,
    from_end: bool,
    as_json: bool,
    file_events: bool | None,
) -> None:
    """Follow one agent's transcript and print its status events."""
    from agentpulse.monitor import Monitor
    from agentpulse.services.session_paths import get_provider_config
    from agentpulse.utils.config import get_config
    from agentpulse.utils.logger import setup_logging

    config = get_config()
    if file_events is not None:
        config = dataclasses.replace(config, use_file_events=file_events)
    setup_logging(config.log_level)

    provider_name = provider or config.default_provider
    workspace = os.path.abspath(cwd or os.getcwd())
    directory = str(get_provider_config(provider_name, config).project_dir(workspace))
    if log_file:
        directory = os.path.dirname(os.path.abspath(log_file))

    async def _print(event: AgentEvent) -> None:
        if as_json:
            click.echo(json.dumps(event.model_dump(mode="json")))
        else:
            click.echo(format_event(event))

    async def _run() -> None:
        async with Monitor(config) as monitor:
            monitor.bus.subscribe("*", _print)
            if log_file and from_end:
                monitor.registry.restore_agent(1, provider_name, directory, log_file)
            else:
                monitor.registry.register_agent(
                    provider_name, directory, session_id=session_id, log_file=log_file
                )
            click.echo(f"Watching {directory} (Ctrl-C to stop)", err=True)
            await monitor.run_until_stopped()

    asyncio.run(_run())


if __name__ == "__main__":
    main()
