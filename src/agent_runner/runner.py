"""High-level facade over agent backends."""

from __future__ import annotations

from typing import Any, AsyncIterator

from agent_runner.backends.base import (
    Backend,
    BackendCapabilityError,
    RunRequest,
    RunResult,
    StreamEvent,
    SupportsStream,
    SupportsVersion,
)
from agent_runner.backends.registry import create_backend
from agent_runner.util.observability import ObservabilityManager


class AgentRunner:
    """Runs prompts through one backend chosen at construction time."""

    def __init__(
        self,
        backend: str | Backend = "auto",
        command: str | None = None,
        *,
        observability: ObservabilityManager | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            backend: Built-in backend identifier or a custom ``Backend``.
            command: Optional executable override for built-in backends.
            observability: Optional observability manager for run events and metrics.

        Raises:
            UnknownBackendError: If the identifier is not built in.
        """

        self._backend = create_backend(backend, command, observability=observability)

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def backend_name(self) -> str:
        return self._backend.name

    async def available(self) -> bool:
        """Check whether the backend CLI is installed and reachable."""

        return await self._backend.available()

    async def run(self, request: RunRequest | None = None, **options: Any) -> RunResult:
        """Run a prompt through the backend.

        Accepts either a ``RunRequest`` or its fields as keyword arguments.
        """

        return await self._backend.run(request or RunRequest(**options))

    async def version(self) -> str | None:
        """Return the backend CLI version, or None if it is not available."""

        if isinstance(self._backend, SupportsVersion):
            return await self._backend.version()
        return "unknown" if await self._backend.available() else None

    async def stream(
        self, request: RunRequest | None = None, **options: Any
    ) -> AsyncIterator[StreamEvent]:
        """Run a prompt and yield events as the agent works.

        Raises:
            BackendCapabilityError: If the backend cannot stream.
        """

        if not isinstance(self._backend, SupportsStream):
            raise BackendCapabilityError(
                f"Backend {self._backend.name} does not support streaming."
            )
        async for event in self._backend.stream(request or RunRequest(**options)):
            yield event


async def run_with_claude(prompt: str, *, command: str | None = None, **options: Any) -> str:
    """Run a prompt through Claude Code and return the response text."""

    result = await AgentRunner("claude-code", command).run(prompt=prompt, **options)
    return result.text


async def run_with_codex(prompt: str, *, command: str | None = None, **options: Any) -> str:
    """Run a prompt through Codex and return the response text."""

    result = await AgentRunner("codex", command).run(prompt=prompt, **options)
    return result.text


async def run_with_auto(prompt: str, **options: Any) -> str:
    """Run a prompt through whichever agent CLI is installed and return the text."""

    result = await AgentRunner("auto").run(prompt=prompt, **options)
    return result.text
