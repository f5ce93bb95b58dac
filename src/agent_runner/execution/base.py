"""Shared types for the subprocess launchers."""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from agent_runner.util.logging import get_logger

RawStreamEventType = Literal["text", "error", "done"]

REAP_TIMEOUT_S = 5.0

_LOGGER = get_logger("agent_runner.execution")


@dataclass(frozen=True)
class SpawnResult:
    """Buffered outcome of a finished process.

    Attributes:
        stdout: Everything the process wrote to standard output.
        stderr: Everything the process wrote to standard error.
        exit_code: Exit status, or None when the process was killed by a signal.
        signal: Name of the terminating signal (e.g. ``SIGKILL``), if any.
    """

    stdout: str
    stderr: str
    exit_code: int | None
    signal: str | None = None


@dataclass(frozen=True)
class RawStreamEvent:
    """Line-level record emitted by the streaming launcher.

    ``text`` carries one raw stdout line, ``error`` a spawn/runtime failure or the
    trimmed stderr of a failed process, and ``done`` the exit code as text.
    """

    type: RawStreamEventType
    data: str


class SettleLatch:
    """Single-assignment flag marking that a process run has finished.

    Timeout and cancellation watchers race against the natural exit of the
    process; only the first ``settle()`` call wins.
    """

    __slots__ = ("_settled",)

    def __init__(self) -> None:
        self._settled = False

    @property
    def settled(self) -> bool:
        return self._settled

    def settle(self) -> bool:
        """Mark the latch settled. Returns True only for the first caller."""

        if self._settled:
            return False
        self._settled = True
        return True


def merge_env(overrides: dict[str, str] | None) -> dict[str, str] | None:
    """Overlay environment overrides on the inherited environment."""

    if not overrides:
        return None
    merged = os.environ.copy()
    merged.update(overrides)
    return merged


def resolve_cwd(cwd: str | Path | None) -> str | None:
    return str(cwd) if cwd is not None else None


def decode_output(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def exit_status(returncode: int | None) -> tuple[int | None, str | None]:
    """Split an asyncio return code into (exit_code, signal_name)."""

    if returncode is None:
        return None, None
    if returncode < 0:
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            name = f"SIG{-returncode}"
        return None, name
    return returncode, None


def send_signal(process: asyncio.subprocess.Process, sig: int) -> None:
    """Deliver a signal, ignoring processes that already exited."""

    if process.returncode is not None:
        return
    try:
        process.send_signal(sig)
    except ProcessLookupError:
        return
    _LOGGER.debug("Sent %s to pid %s", signal.Signals(sig).name, process.pid)


async def reap(process: asyncio.subprocess.Process) -> None:
    """Wait briefly for a signalled process so it is not left behind as a zombie."""

    with contextlib.suppress(asyncio.TimeoutError):
        await asyncio.wait_for(process.wait(), REAP_TIMEOUT_S)
    if process.returncode is None:
        _LOGGER.warning(
            "Process %s did not exit within %.1fs of SIGKILL.", process.pid, REAP_TIMEOUT_S
        )


async def kill_after_timeout(
    process: asyncio.subprocess.Process,
    timeout_s: float,
    latch: SettleLatch,
) -> None:
    await asyncio.sleep(timeout_s)
    if not latch.settled:
        _LOGGER.warning("Process %s exceeded %.1fs timeout; killing.", process.pid, timeout_s)
        send_signal(process, signal.SIGKILL)


async def terminate_on_cancel(
    process: asyncio.subprocess.Process,
    cancel_event: asyncio.Event,
    latch: SettleLatch,
) -> None:
    await cancel_event.wait()
    if not latch.settled:
        _LOGGER.info("Cancellation requested; terminating pid %s.", process.pid)
        send_signal(process, signal.SIGTERM)


def start_watchers(
    process: asyncio.subprocess.Process,
    latch: SettleLatch,
    *,
    timeout_s: float | None,
    cancel_event: asyncio.Event | None,
) -> list[asyncio.Task[None]]:
    """Arm the timeout and cancellation watchers for a freshly spawned process.

    A ``timeout_s`` of zero or less kills the process as soon as it starts;
    None disables the timeout.
    """

    watchers: list[asyncio.Task[None]] = []
    if timeout_s is not None:
        watchers.append(asyncio.create_task(kill_after_timeout(process, timeout_s, latch)))
    if cancel_event is not None:
        if cancel_event.is_set():
            send_signal(process, signal.SIGTERM)
        else:
            watchers.append(
                asyncio.create_task(terminate_on_cancel(process, cancel_event, latch))
            )
    return watchers


def stop_watchers(watchers: list[asyncio.Task[None]]) -> None:
    for watcher in watchers:
        watcher.cancel()
