"""Line-streaming process launcher."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from pathlib import Path
from typing import AsyncIterator

from agent_runner.execution.base import (
    RawStreamEvent,
    SettleLatch,
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

_LOGGER = get_logger("agent_runner.execution.streaming")

READ_CHUNK_SIZE = 64 * 1024
QUEUE_MAXSIZE = 256


async def stream_command(
    command: str,
    args: list[str],
    *,
    cwd: str | Path | None = None,
    env: dict[str, str] | None = None,
    input_text: str | None = None,
    timeout_s: float | None = None,
    cancel_event: asyncio.Event | None = None,
) -> AsyncIterator[RawStreamEvent]:
    """Run a command and yield its stdout line by line.

    Every non-blank stdout line becomes a ``text`` event as soon as it is
    complete. When the process exits, a failed run with stderr output yields one
    ``error`` event, and the sequence always ends with a ``done`` event whose
    data is the exit code (``"0"`` when the process was killed by a signal).

    A process that cannot be started yields a single ``error`` event and no
    ``done``. Timeout and cancellation behave as in ``spawn_command``.
    Closing the iterator early kills the process.
    """

    try:
        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=resolve_cwd(cwd),
            env=merge_env(env),
        )
    except OSError as exc:
        _LOGGER.debug("Failed to spawn %s: %s", command, exc)
        yield RawStreamEvent("error", str(exc))
        return
    _LOGGER.debug("Streaming %s (pid %s)", command, process.pid)

    if process.stdin is None or process.stdout is None or process.stderr is None:
        raise RuntimeError(f"{command} process pipes missing")

    latch = SettleLatch()
    watchers = start_watchers(process, latch, timeout_s=timeout_s, cancel_event=cancel_event)
    queue: asyncio.Queue[RawStreamEvent | None] = asyncio.Queue(maxsize=QUEUE_MAXSIZE)
    stderr_chunks: list[bytes] = []
    stdout_task = asyncio.create_task(_pump_lines(process.stdout, queue))
    stderr_task = asyncio.create_task(_drain(process.stderr, stderr_chunks))

    try:
        await _feed_stdin(process.stdin, input_text)
        while True:
            event = await queue.get()
            if event is None:
                break
            yield event
            if event.type == "error":
                return
        await stderr_task
        returncode = await process.wait()
    finally:
        latch.settle()
        stop_watchers(watchers)
        for task in (stdout_task, stderr_task):
            if not task.done():
                task.cancel()
        if process.returncode is None:
            send_signal(process, signal.SIGKILL)
            await reap(process)

    exit_code, _ = exit_status(returncode)
    _LOGGER.debug("Streamed process %s exited with code %s", process.pid, exit_code)
    stderr_text = decode_output(b"".join(stderr_chunks)).strip()
    if stderr_text and exit_code != 0:
        yield RawStreamEvent("error", stderr_text)
    yield RawStreamEvent("done", str(exit_code if exit_code is not None else 0))


async def _feed_stdin(stdin: asyncio.StreamWriter, input_text: str | None) -> None:
    with contextlib.suppress(BrokenPipeError, ConnectionResetError):
        if input_text is not None:
            stdin.write(input_text.encode("utf-8"))
            await stdin.drain()
        stdin.close()


async def _pump_lines(
    stream: asyncio.StreamReader,
    queue: asyncio.Queue[RawStreamEvent | None],
) -> None:
    buffer = b""
    try:
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            buffer += chunk
            *lines, buffer = buffer.split(b"\n")
            for line in lines:
                text = decode_output(line).rstrip("\r")
                if text.strip():
                    await queue.put(RawStreamEvent("text", text))
        remainder = decode_output(buffer).strip()
        if remainder:
            await queue.put(RawStreamEvent("text", remainder))
    except OSError as exc:
        await queue.put(RawStreamEvent("error", str(exc)))
    await queue.put(None)


async def _drain(stream: asyncio.StreamReader, chunks: list[bytes]) -> None:
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            return
        chunks.append(chunk)
