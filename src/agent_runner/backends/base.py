"""Backend contracts, run data model, and the shared CLI adapter."""

from __future__ import annotations

import asyncio
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Literal, Protocol, runtime_checkable

from agent_runner.execution.spawn import spawn_command
from agent_runner.execution.streaming import stream_command
from agent_runner.util.logging import get_logger
from agent_runner.util.observability import ObservabilityManager, create_observability_manager

DEFAULT_TIMEOUT_S = 300.0
VERSION_TIMEOUT_S = 10.0
TOOL_RESULT_EXCERPT_CHARS = 2000

StreamEventType = Literal["text", "tool_use", "tool_result", "error", "done"]
TERMINAL_EVENT_TYPES = frozenset({"error", "done"})


class AgentRunnerError(RuntimeError):
    """Base exception for agent-runner failures."""


class BackendProcessError(AgentRunnerError):
    """Raised when a backend process exits unsuccessfully."""

    def __init__(self, backend: str, exit_code: int | None, detail: str) -> None:
        super().__init__(f"{backend} exited with code {exit_code}: {detail}")
        self.backend = backend
        self.exit_code = exit_code
        self.detail = detail


class BackendNotFoundError(AgentRunnerError):
    """Raised when no candidate agent CLI is installed."""


class BackendCapabilityError(AgentRunnerError):
    """Raised when a backend lacks an optional capability (e.g. streaming)."""


class UnknownBackendError(AgentRunnerError, ValueError):
    """Raised for backend identifiers that are not built in."""


class ExecutionMode(str, Enum):
    """Access policy the agent CLI grants itself for a run."""

    PRINT = "print"
    FULL_ACCESS = "full-access"
    WORKSPACE_WRITE = "workspace-write"


@dataclass(frozen=True)
class RunRequest:
    """Options for a single agent run.

    Attributes:
        prompt: Message sent to the agent. Must not be blank.
        cwd: Working directory for the agent process.
        session_id: Session token from an earlier run, to continue that conversation.
        model: Model identifier understood by the backend (e.g. "sonnet", "o4-mini").
        system_prompt: Text appended to the backend's system prompt.
        mode: Execution mode controlling file and tool access.
        timeout_s: Seconds before the process is killed; None disables the timeout.
        cancel_event: Event that, once set, asks the process to terminate.
        extra_args: Additional raw CLI arguments placed before the prompt.
        env: Environment overrides for the process.
        allowed_tools: Tool allow-list, where the backend supports one.
        max_budget_usd: Spend ceiling, where the backend supports one.
        verbose: Capture tool invocations into the result.
    """

    prompt: str
    cwd: str | Path | None = None
    session_id: str | None = None
    model: str | None = None
    system_prompt: str | None = None
    mode: ExecutionMode = ExecutionMode.FULL_ACCESS
    timeout_s: float | None = DEFAULT_TIMEOUT_S
    cancel_event: asyncio.Event | None = field(default=None, compare=False, repr=False)
    extra_args: tuple[str, ...] = ()
    env: dict[str, str] | None = field(default=None, hash=False)
    allowed_tools: tuple[str, ...] | None = None
    max_budget_usd: float | None = None
    verbose: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.prompt, str) or not self.prompt.strip():
            raise ValueError("prompt must be a non-empty string.")
        if not isinstance(self.mode, ExecutionMode):
            object.__setattr__(self, "mode", ExecutionMode(self.mode))
        # Sequences are stored as tuples so requests stay hashable.
        object.__setattr__(self, "extra_args", tuple(self.extra_args))
        if self.allowed_tools is not None:
            object.__setattr__(self, "allowed_tools", tuple(self.allowed_tools))


@dataclass(frozen=True)
class ToolUse:
    """A tool invocation reported by the agent."""

    name: str
    input: Any = field(default=None, hash=False)


@dataclass(frozen=True)
class ParsedOutput:
    """Backend-neutral decoding of a backend's stdout."""

    text: str
    session_id: str | None = None
    num_turns: int | None = None
    cost_usd: float | None = None
    tool_uses: list[ToolUse] | None = field(default=None, hash=False)


@dataclass(frozen=True)
class RunResult:
    """Result of an agent run.

    Attributes:
        text: Response text; an empty string is a valid response.
        session_id: Session token for resuming later, when the backend emitted one.
        duration_s: Wall-clock duration of the run in seconds.
        exit_code: Process exit code, or None when the process was killed by a signal.
        num_turns: Server-side request/response round trips, when reported.
        cost_usd: Monetary cost of the run, when reported.
        tool_uses: Tool invocations, when verbose capture was requested and any occurred.
    """

    text: str
    session_id: str | None
    duration_s: float
    exit_code: int | None
    num_turns: int | None = None
    cost_usd: float | None = None
    tool_uses: list[ToolUse] | None = field(default=None, hash=False)


@dataclass(frozen=True)
class StreamEvent:
    """Normalized streaming event. ``done`` and ``error`` end the stream."""

    type: StreamEventType
    data: str

    @property
    def terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES


@runtime_checkable
class Backend(Protocol):
    """Minimal capability set every backend provides."""

    name: str

    async def available(self) -> bool:
        ...

    async def run(self, request: RunRequest) -> RunResult:
        ...


@runtime_checkable
class SupportsVersion(Protocol):
    """Backends that can report the version of their CLI."""

    async def version(self) -> str | None:
        ...


@runtime_checkable
class SupportsStream(Protocol):
    """Backends that can stream events while the agent works."""

    def stream(self, request: RunRequest) -> AsyncIterator[StreamEvent]:
        ...


def serialize_payload(value: Any) -> str:
    """Serialize an opaque payload for a stream event."""

    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def excerpt(text: str, limit: int = TOOL_RESULT_EXCERPT_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def optional_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def optional_float(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


class CliBackend(ABC):
    """Shared run/stream/version plumbing for CLI-backed agents.

    Subclasses supply the executable name, argument construction, and output
    parsers; this class owns process invocation, failure reporting, and
    observability.
    """

    name: str = ""
    default_command: str = ""
    install_hint: str = ""

    def __init__(
        self,
        command: str | None = None,
        *,
        observability: ObservabilityManager | None = None,
    ) -> None:
        """Initialize the backend.

        Args:
            command: Optional executable override (name or path).
            observability: Optional observability manager for run events and metrics.
        """

        self.command = command or self.default_command
        self._observability = observability or create_observability_manager(
            {"backend": self.name}
        )
        self._logger = get_logger(f"agent_runner.backends.{self.name}")

    async def available(self) -> bool:
        """Check whether the CLI is installed and answers a version query."""

        return await self.version() is not None

    async def version(self) -> str | None:
        """Return the trimmed ``--version`` output, or None if the CLI is unusable."""

        try:
            result = await spawn_command(self.command, ["--version"], timeout_s=VERSION_TIMEOUT_S)
        except OSError as exc:
            self._logger.debug("Version check for %s failed: %s", self.command, exc)
            return None
        text = result.stdout.strip()
        if result.exit_code == 0 and text:
            return text
        return None

    async def run(self, request: RunRequest) -> RunResult:
        """Execute a prompt and return the decoded result.

        Raises:
            BackendProcessError: If the process exits non-zero or is killed.
            OSError: If the process cannot be started.
        """

        args = self.build_args(request, streaming=False)
        self._observability.metrics.increment(f"{self.name}.runs")
        self._observability.log_event(
            "backend.run.start",
            {"command": self.command, "mode": request.mode.value, "model": request.model},
        )
        start = time.monotonic()
        result = await spawn_command(
            self.command,
            args,
            cwd=request.cwd,
            env=request.env,
            timeout_s=request.timeout_s,
            cancel_event=request.cancel_event,
        )
        duration = time.monotonic() - start
        self._observability.metrics.record_duration(f"{self.name}.run", duration)

        if result.exit_code != 0:
            detail = (
                result.stderr.strip() or result.stdout.strip() or f"{self.name} process failed"
            )
            self._observability.metrics.increment(f"{self.name}.failures")
            self._observability.log_event(
                "backend.run.failed",
                {"exit_code": result.exit_code, "signal": result.signal, "duration_s": duration},
                level="WARNING",
            )
            raise BackendProcessError(self.name, result.exit_code, detail)

        parsed = self.parse_output(result.stdout, request)
        self._observability.metrics.record_usage(cost_usd=parsed.cost_usd, turns=parsed.num_turns)
        self._observability.log_event(
            "backend.run.finish",
            {
                "duration_s": duration,
                "num_turns": parsed.num_turns,
                "cost_usd": parsed.cost_usd,
                "has_session": parsed.session_id is not None,
            },
        )
        return RunResult(
            text=parsed.text,
            session_id=parsed.session_id,
            duration_s=duration,
            exit_code=result.exit_code,
            num_turns=parsed.num_turns,
            cost_usd=parsed.cost_usd,
            tool_uses=parsed.tool_uses if request.verbose else None,
        )

    async def stream(self, request: RunRequest) -> AsyncIterator[StreamEvent]:
        """Execute a prompt and yield normalized events as they arrive.

        The sequence ends with one ``done`` or ``error`` event. An ``error`` is not
        necessarily followed by ``done``.
        """

        args = self.build_args(request, streaming=True)
        self._observability.metrics.increment(f"{self.name}.streams")
        self._observability.log_event(
            "backend.stream.start",
            {"command": self.command, "mode": request.mode.value, "model": request.model},
        )
        raw_events = stream_command(
            self.command,
            args,
            cwd=request.cwd,
            env=request.env,
            timeout_s=request.timeout_s,
            cancel_event=request.cancel_event,
        )
        terminal: StreamEvent | None = None
        try:
            async for raw in raw_events:
                if raw.type != "text":
                    terminal = StreamEvent(raw.type, raw.data)
                    yield terminal
                    return
                for event in self.parse_stream_line(raw.data):
                    yield event
                    if event.terminal:
                        terminal = event
                        return
        finally:
            await raw_events.aclose()
            self._observability.log_event(
                "backend.stream.finish",
                {"terminal": terminal.type if terminal else None},
            )

    @abstractmethod
    def build_args(self, request: RunRequest, *, streaming: bool) -> list[str]:
        """Build the argument vector for a run; the prompt is always last."""

    @abstractmethod
    def parse_output(self, stdout: str, request: RunRequest) -> ParsedOutput:
        """Decode buffered stdout of a successful run."""

    @abstractmethod
    def parse_stream_line(self, line: str) -> list[StreamEvent]:
        """Decode one stdout line of a streaming run."""
