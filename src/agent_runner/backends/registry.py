"""Backend factory for built-in identifiers and custom implementations."""

from __future__ import annotations

from agent_runner.backends.auto import AutoBackend
from agent_runner.backends.base import Backend, UnknownBackendError
from agent_runner.backends.claude_code import ClaudeCodeBackend
from agent_runner.backends.codex import CodexBackend
from agent_runner.util.observability import ObservabilityManager

BACKEND_IDS: tuple[str, ...] = ("claude-code", "codex", "auto")


def list_backend_ids() -> tuple[str, ...]:
    """Return the identifiers accepted by ``create_backend``."""

    return BACKEND_IDS


def create_backend(
    backend: str | Backend,
    command: str | None = None,
    *,
    observability: ObservabilityManager | None = None,
) -> Backend:
    """Create a backend instance from an identifier.

    Args:
        backend: Built-in identifier ("claude-code", "codex", "auto") or a custom
            object implementing the ``Backend`` protocol, returned unchanged.
        command: Optional executable override for the built-in CLI backends.
        observability: Optional observability manager for run events and metrics.

    Returns:
        A ready-to-use backend.

    Raises:
        UnknownBackendError: If the identifier is not built in.
    """

    if not isinstance(backend, str):
        if not isinstance(backend, Backend):
            raise UnknownBackendError(f"Unknown backend: {backend!r}")
        return backend

    backend_id = backend.strip().lower()
    if backend_id in {"claude-code", "claude_code", "claude"}:
        return ClaudeCodeBackend(command, observability=observability)
    if backend_id == "codex":
        return CodexBackend(command, observability=observability)
    if backend_id == "auto":
        return AutoBackend(observability=observability)
    raise UnknownBackendError(f"Unknown backend: {backend}")
