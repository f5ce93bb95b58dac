from __future__ import annotations

import asyncio
from typing import Any

import pytest

from agent_runner import runner as runner_module
from agent_runner.backends.auto import AutoBackend
from agent_runner.backends.base import (
    BackendCapabilityError,
    RunRequest,
    RunResult,
    UnknownBackendError,
)
from agent_runner.backends.claude_code import ClaudeCodeBackend
from agent_runner.backends.codex import CodexBackend
from agent_runner.backends.registry import create_backend, list_backend_ids
from agent_runner.runner import AgentRunner


class EchoBackend:
    name = "echo"

    def __init__(self, available: bool = True) -> None:
        self.is_available = available
        self.requests: list[RunRequest] = []

    async def available(self) -> bool:
        return self.is_available

    async def run(self, request: RunRequest) -> RunResult:
        self.requests.append(request)
        return RunResult(
            text=f"echo: {request.prompt}",
            session_id="echo-session",
            duration_s=0.0,
            exit_code=0,
        )


def test_list_backend_ids() -> None:
    assert list_backend_ids() == ("claude-code", "codex", "auto")


def test_create_backend_builtins_and_aliases() -> None:
    assert isinstance(create_backend("claude-code"), ClaudeCodeBackend)
    assert isinstance(create_backend("claude"), ClaudeCodeBackend)
    assert isinstance(create_backend("codex"), CodexBackend)
    assert isinstance(create_backend("auto"), AutoBackend)
    assert create_backend("codex", "/usr/local/bin/codex").command == "/usr/local/bin/codex"


def test_unknown_backend_is_a_value_error() -> None:
    with pytest.raises(UnknownBackendError, match="Unknown backend: gemini"):
        AgentRunner("gemini")
    with pytest.raises(ValueError):
        create_backend("gemini")
    with pytest.raises(UnknownBackendError):
        create_backend(object())  # type: ignore[arg-type]


def test_runner_defaults_to_auto() -> None:
    runner = AgentRunner()

    assert runner.backend_name == "auto"
    assert isinstance(runner.backend, AutoBackend)


def test_runner_uses_custom_backend_unchanged() -> None:
    backend = EchoBackend()
    runner = AgentRunner(backend)

    result = asyncio.run(runner.run(prompt="hello", model="m"))

    assert runner.backend is backend
    assert result.text == "echo: hello"
    assert result.session_id == "echo-session"
    assert backend.requests[0].model == "m"


def test_runner_accepts_request_objects() -> None:
    backend = EchoBackend()

    result = asyncio.run(AgentRunner(backend).run(RunRequest(prompt="via request")))

    assert result.text == "echo: via request"


def test_runner_rejects_blank_prompt() -> None:
    with pytest.raises(ValueError):
        asyncio.run(AgentRunner(EchoBackend()).run(prompt=" "))


def test_version_falls_back_to_availability() -> None:
    assert asyncio.run(AgentRunner(EchoBackend()).version()) == "unknown"
    assert asyncio.run(AgentRunner(EchoBackend(available=False)).version()) is None


def test_stream_requires_streaming_backend() -> None:
    runner = AgentRunner(EchoBackend())

    async def scenario() -> None:
        async for _ in runner.stream(prompt="hi"):
            pass

    with pytest.raises(BackendCapabilityError):
        asyncio.run(scenario())


@pytest.mark.parametrize(
    ("function", "backend_name"),
    [
        (runner_module.run_with_claude, "claude-code"),
        (runner_module.run_with_codex, "codex"),
    ],
)
def test_convenience_functions_return_text(
    monkeypatch: pytest.MonkeyPatch, function: Any, backend_name: str
) -> None:
    seen: list[tuple[str, RunRequest]] = []

    async def fake_run(self: Any, request: RunRequest) -> RunResult:
        seen.append((self.name, request))
        return RunResult(text="answer", session_id="s", duration_s=0.0, exit_code=0)

    monkeypatch.setattr(ClaudeCodeBackend, "run", fake_run)
    monkeypatch.setattr(CodexBackend, "run", fake_run)

    text = asyncio.run(function("question", mode="print"))

    assert text == "answer"
    assert seen[0][0] == backend_name
    assert seen[0][1].prompt == "question"
    assert seen[0][1].mode.value == "print"


def test_run_with_auto_returns_text(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_run(self: AutoBackend, request: RunRequest) -> RunResult:
        return RunResult(
            text=f"auto: {request.prompt}", session_id=None, duration_s=0.0, exit_code=0
        )

    monkeypatch.setattr(AutoBackend, "run", fake_run)

    assert asyncio.run(runner_module.run_with_auto("q")) == "auto: q"
