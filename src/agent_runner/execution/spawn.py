"""Buffered process launcher."""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path

from agent_runner.execution.base import (
    SettleLatch,
    SpawnResult,
    decode_output,
    exit_status,
    merge_env,
    reap,
    resolve_cwd,
    send_signal,
    start_watchers,
    stop_watchers,
)
from agent_runner.util.logging import get_logger

_LOGGER = get_logger("agent_runner.execution.spawn")


async def spawn_command(
    command: str,
    args: list[str],
    *,
    cwd: str | Path | None = None,
    env: dict[str, str] | None = None,
    input_text: str | None = None,
    timeout_s: float | None = None,
    cancel_event: asyncio.Event | None = None,
) -> SpawnResult:
    """Run a command to completion and collect its output.

    The process is killed with SIGKILL once ``timeout_s`` elapses and sent
    SIGTERM when ``cancel_event`` is set; either way the call still returns a
    ``SpawnResult`` describing how the process ended. A non-zero exit status is
    reported as data, never raised.

    Args:
        command: Executable name or path.
        args: Arguments passed after the executable.
        cwd: Optional working directory.
        env: Optional environment overrides merged over the current environment.
        input_text: Optional text written to stdin before it is closed.
        timeout_s: Optional timeout in seconds; zero or less kills the process at once.
        cancel_event: Optional event that requests graceful termination.

    Returns:
        SpawnResult with stdout, stderr, exit code, and terminating signal.

    Raises:
        OSError: If the process could not be started (e.g. missing executable).
    """

    process = await asyncio.create_subprocess_exec(
        command,
        *args,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=resolve_cwd(cwd),
        env=merge_env(env),
    )
    _LOGGER.debug("Spawned %s (pid %s) with %d args", command, process.pid, len(args))

    latch = SettleLatch()
    watchers = start_watchers(process, latch, timeout_s=timeout_s, cancel_event=cancel_event)
    payload = input_text.encode("utf-8") if input_text is not None else None
    try:
        stdout, stderr = await process.communicate(payload)
    except asyncio.CancelledError:
        send_signal(process, signal.SIGKILL)
        await reap(process)
        raise
    finally:
        latch.settle()
        stop_watchers(watchers)

    exit_code, signal_name = exit_status(process.returncode)
    _LOGGER.debug(
        "Process %s exited with code %s (signal %s)", process.pid, exit_code, signal_name
    )
    return SpawnResult(
        stdout=decode_output(stdout),
        stderr=decode_output(stderr),
        exit_code=exit_code,
        signal=signal_name,
    )
