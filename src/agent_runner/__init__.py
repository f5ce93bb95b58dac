"""Uniform async execution layer over agent CLIs (Claude Code, Codex)."""

from agent_runner.backends import (
    AgentRunnerError,
    AutoBackend,
    Backend,
    BackendCapabilityError,
    BackendNotFoundError,
    BackendProcessError,
    ClaudeCodeBackend,
    CodexBackend,
    ExecutionMode,
    RunRequest,
    RunResult,
    StreamEvent,
    SupportsStream,
    SupportsVersion,
    ToolUse,
    UnknownBackendError,
    create_backend,
)
from agent_runner.execution import RawStreamEvent, SpawnResult, spawn_command, stream_command
from agent_runner.runner import AgentRunner, run_with_auto, run_with_claude, run_with_codex

__all__ = [
    "AgentRunner",
    "AgentRunnerError",
    "AutoBackend",
    "Backend",
    "BackendCapabilityError",
    "BackendNotFoundError",
    "BackendProcessError",
    "ClaudeCodeBackend",
    "CodexBackend",
    "ExecutionMode",
    "RawStreamEvent",
    "RunRequest",
    "RunResult",
    "SpawnResult",
    "StreamEvent",
    "SupportsStream",
    "SupportsVersion",
    "ToolUse",
    "UnknownBackendError",
    "create_backend",
    "run_with_auto",
    "run_with_claude",
    "run_with_codex",
    "spawn_command",
    "stream_command",
]
