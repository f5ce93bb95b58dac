"""CLI entrypoints for agent-runner."""

from __future__ import annotations

import asyncio
import json
from dataclasses import asdict
from pathlib import Path

import typer

from agent_runner.app import (
    AppConfigError,
    build_request,
    create_runner,
    initialize_config,
    load_app_config,
)
from agent_runner.backends.base import RunRequest
from agent_runner.runner import AgentRunner
from agent_runner.util.logging import configure_logging

app = typer.Typer(help="Run prompts through agent CLIs (Claude Code, Codex).")

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to a config file or directory.")
BACKEND_OPTION = typer.Option(None, "--backend", "-b", help="Backend: claude-code|codex|auto")
COMMAND_OPTION = typer.Option(None, "--command", help="Executable override for the backend.")


@app.callback()
def main(
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Logging level (e.g., DEBUG, INFO, WARNING). Defaults to the configured level.",
    ),
) -> None:
    """Configure CLI-level options."""

    try:
        configure_logging(log_level or _configured_log_level())
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--log-level") from exc


def _configured_log_level() -> str:
    # Commands load the configuration again and report its errors.
    try:
        return load_app_config().log_level
    except AppConfigError:
        return "WARNING"


@app.command()
def init(workspace: Path = typer.Argument(Path("."))) -> None:
    """Write a default agent_runner.yaml into a directory."""

    try:
        config_path = initialize_config(workspace)
    except AppConfigError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc
    typer.echo(f"Created configuration at {config_path}")


@app.command()
def check(
    config_path: Path | None = CONFIG_OPTION,
    backend: str | None = BACKEND_OPTION,
    command: str | None = COMMAND_OPTION,
) -> None:
    """Report whether the backend CLI is installed, and its version."""

    try:
        runner = create_runner(load_app_config(config_path), backend=backend, command=command)
        version = asyncio.run(runner.version())
    except Exception as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc

    if version is None:
        typer.echo(f"{runner.backend_name}: not available")
        raise typer.Exit(code=1)
    typer.echo(f"{runner.backend_name}: {version}")


@app.command("run")
def run_command(
    prompt: str = typer.Argument(..., help="Prompt to send to the agent."),
    config_path: Path | None = CONFIG_OPTION,
    backend: str | None = BACKEND_OPTION,
    command: str | None = COMMAND_OPTION,
    mode: str | None = typer.Option(
        None, "--mode", "-m", help="Execution mode: print|full-access|workspace-write"
    ),
    model: str | None = typer.Option(None, "--model", help="Model identifier."),
    session_id: str | None = typer.Option(None, "--session", help="Session to resume."),
    system_prompt: str | None = typer.Option(
        None, "--system-prompt", help="Text appended to the system prompt."
    ),
    cwd: Path | None = typer.Option(None, "--cwd", help="Working directory for the agent."),
    timeout_s: float | None = typer.Option(None, "--timeout", help="Timeout in seconds."),
    allowed_tools: list[str] | None = typer.Option(
        None, "--allowed-tool", help="Tool to allow (repeatable)."
    ),
    max_budget_usd: float | None = typer.Option(None, "--max-budget", help="Spend ceiling in USD."),
    verbose: bool = typer.Option(False, "--verbose", help="Capture tool invocations."),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON."),
) -> None:
    """Run a prompt and print the agent's response."""

    try:
        config = load_app_config(config_path)
        runner = create_runner(config, backend=backend, command=command)
        request = build_request(
            config,
            prompt,
            mode=mode,
            model=model,
            session_id=session_id,
            system_prompt=system_prompt,
            cwd=cwd,
            timeout_s=timeout_s,
            allowed_tools=allowed_tools or None,
            max_budget_usd=max_budget_usd,
            verbose=verbose,
        )
        result = asyncio.run(runner.run(request))
    except Exception as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc

    if as_json:
        typer.echo(json.dumps(asdict(result), indent=2, default=str))
        return
    typer.echo(result.text)
    if result.session_id:
        typer.echo(f"Session: {result.session_id}", err=True)


@app.command("stream")
def stream_command(
    prompt: str = typer.Argument(..., help="Prompt to send to the agent."),
    config_path: Path | None = CONFIG_OPTION,
    backend: str | None = BACKEND_OPTION,
    command: str | None = COMMAND_OPTION,
    mode: str | None = typer.Option(
        None, "--mode", "-m", help="Execution mode: print|full-access|workspace-write"
    ),
    model: str | None = typer.Option(None, "--model", help="Model identifier."),
    session_id: str | None = typer.Option(None, "--session", help="Session to resume."),
    cwd: Path | None = typer.Option(None, "--cwd", help="Working directory for the agent."),
    timeout_s: float | None = typer.Option(None, "--timeout", help="Timeout in seconds."),
) -> None:
    """Run a prompt and print events as the agent works."""

    try:
        config = load_app_config(config_path)
        runner = create_runner(config, backend=backend, command=command)
        request = build_request(
            config,
            prompt,
            mode=mode,
            model=model,
            session_id=session_id,
            cwd=cwd,
            timeout_s=timeout_s,
        )
        exit_code = asyncio.run(_print_stream(runner, request))
    except Exception as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc

    if exit_code:
        raise typer.Exit(code=exit_code)


async def _print_stream(runner: AgentRunner, request: RunRequest) -> int:
    async for event in runner.stream(request):
        if event.type == "text":
            typer.echo(event.data)
        elif event.type == "error":
            typer.echo(f"Error: {event.data}", err=True)
            return 1
        elif event.type == "done":
            return 0 if event.data == "0" else 1
        else:
            typer.echo(f"[{event.type}] {event.data}")
    return 0
