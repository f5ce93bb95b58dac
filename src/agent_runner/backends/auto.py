"""Composite backend that picks the first installed agent CLI."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Sequence

from agent_runner.backends.base import (
    Backend,
    BackendCapabilityError,
    BackendNotFoundError,
    RunRequest,
    RunResult,
    StreamEvent,
    SupportsStream,
    SupportsVersion,
)
from agent_runner.backends.claude_code import ClaudeCodeBackend
from agent_runner.backends.codex import CodexBackend
from agent_runner.util.logging import get_logger
from agent_runner.util.observability import ObservabilityManager

_LOGGER = get_logger("agent_runner.backends.auto")


class AutoBackend:
    """Delegates to the first available candidate, Claude Code before Codex.

    Resolution happens once per instance: the first successful discovery is kept
    for every later call even if that CLI disappears afterwards, and a failed
    discovery fails every later call the same way. Concurrent callers share one
    in-flight discovery.
    """

    name = "auto"

    def __init__(
        self,
        prefer: str | None = None,
        *,
        candidates: Sequence[Backend] | None = None,
        observability: ObservabilityManager | None = None,
    ) -> None:
        """Initialize the composite backend.

        Args:
            prefer: Name of the candidate to try first (e.g. "codex").
            candidates: Optional explicit candidates, in priority order.
            observability: Optional observability manager shared with built-in candidates.
        """

        if candidates is None:
            candidates = [
                ClaudeCodeBackend(observability=observability),
                CodexBackend(observability=observability),
            ]
        ordered = list(candidates)
        if prefer:
            ordered.sort(key=lambda candidate: candidate.name != prefer)
        self._candidates: tuple[Backend, ...] = tuple(ordered)
        self._resolved: Backend | None = None
        self._failure: str | None = None
        self._resolving: asyncio.Task[Backend] | None = None

    @property
    def candidates(self) -> tuple[Backend, ...]:
        return self._candidates

    @property
    def resolved(self) -> Backend | None:
        """The candidate chosen by discovery, if discovery has succeeded."""

        return self._resolved

    async def available(self) -> bool:
        """Report whether any candidate is available, without resolving."""

        for candidate in self._candidates:
            if await candidate.available():
                return True
        return False

    async def resolve(self) -> Backend:
        """Return the sticky candidate, running discovery on first use.

        Raises:
            BackendNotFoundError: If no candidate is available.
        """

        if self._resolved is not None:
            return self._resolved
        if self._failure is not None:
            raise BackendNotFoundError(self._failure)
        if self._resolving is None:
            self._resolving = asyncio.ensure_future(self._discover())
            self._resolving.add_done_callback(self._discovery_finished)
        # A cancelled caller stops waiting; discovery carries on for the others.
        return await asyncio.shield(self._resolving)

    async def run(self, request: RunRequest) -> RunResult:
        backend = await self.resolve()
        return await backend.run(request)

    async def stream(self, request: RunRequest) -> AsyncIterator[StreamEvent]:
        backend = await self.resolve()
        if not isinstance(backend, SupportsStream):
            raise BackendCapabilityError(f"Backend {backend.name} does not support streaming.")
        async for event in backend.stream(request):
            yield event

    async def version(self) -> str | None:
        try:
            backend = await self.resolve()
        except BackendNotFoundError:
            return None
        if isinstance(backend, SupportsVersion):
            return await backend.version()
        return "unknown"

    def _discovery_finished(self, task: asyncio.Future[Backend]) -> None:
        if self._resolving is task:
            self._resolving = None
        if not task.cancelled():
            # Mark the outcome retrieved even when every caller gave up waiting.
            task.exception()

    async def _discover(self) -> Backend:
        for candidate in self._candidates:
            if await candidate.available():
                _LOGGER.info("Resolved agent backend: %s", candidate.name)
                self._resolved = candidate
                return candidate
        hints = [
            getattr(candidate, "install_hint", "") or candidate.name
            for candidate in self._candidates
        ]
        self._failure = f"No agent CLI found. Install {' or '.join(hints)}."
        _LOGGER.warning(self._failure)
        raise BackendNotFoundError(self._failure)
