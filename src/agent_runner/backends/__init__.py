"""Agent CLI backends."""

from agent_runner.backends.auto import AutoBackend
from agent_runner.backends.base import (
    AgentRunnerError,
    Backend,
    BackendCapabilityError,
    BackendNotFoundError,
    BackendProcessError,
    ExecutionMode,
    RunRequest,
    RunResult,
    StreamEvent,
    SupportsStream,
    SupportsVersion,
    ToolUse,
    UnknownBackendError,
)
from agent_runner.backends.claude_code import ClaudeCodeBackend
from agent_runner.backends.codex import CodexBackend
from agent_runner.backends.registry import create_backend, list_backend_ids

__all__ = [
    "AgentRunnerError",
    "AutoBackend",
    "Backend",
    "BackendCapabilityError",
    "BackendNotFoundError",
    "BackendProcessError",
    "ClaudeCodeBackend",
    "CodexBackend",
    "ExecutionMode",
    "RunRequest",
    "RunResult",
    "StreamEvent",
    "SupportsStream",
    "SupportsVersion",
    "ToolUse",
    "UnknownBackendError",
    "create_backend",
    "list_backend_ids",
]
