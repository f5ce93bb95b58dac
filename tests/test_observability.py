from __future__ import annotations

import asyncio
import json
import logging

import pytest

from agent_runner.backends import base as backend_base
from agent_runner.backends.base import BackendProcessError, RunRequest
from agent_runner.backends.claude_code import ClaudeCodeBackend
from agent_runner.execution.base import SpawnResult
from agent_runner.util.observability import (
    EventLogger,
    MetricsCollector,
    create_observability_manager,
)


def test_metrics_collector_snapshot() -> None:
    metrics = MetricsCollector()
    metrics.increment("calls", 2)
    metrics.record_duration("latency", 1.5)
    metrics.record_usage(cost_usd=0.25, turns=3)
    metrics.record_usage(cost_usd=None, turns=1)

    snapshot = metrics.snapshot()

    assert snapshot["counters"]["calls"] == 2
    assert snapshot["durations"]["latency"]["count"] == 1.0
    assert snapshot["usage"] == {"cost_usd": 0.25, "turns": 4}


def test_event_logger_emits_json(caplog) -> None:
    logger = EventLogger("test.events", context={"backend": "codex"})
    caplog.set_level(logging.INFO, logger="test.events")

    logger.log("sample.event", {"value": 42})

    assert caplog.records
    payload = json.loads(caplog.records[-1].message)
    assert payload["event_type"] == "sample.event"
    assert payload["payload"]["value"] == 42
    assert payload["context"] == {"backend": "codex"}


def test_event_logger_skips_disabled_levels(caplog) -> None:
    logger = EventLogger("test.quiet")
    caplog.set_level(logging.WARNING, logger="test.quiet")

    logger.log("noisy.event", {})

    assert not caplog.records


def test_backend_run_records_metrics_and_events(
    monkeypatch: pytest.MonkeyPatch, caplog
) -> None:
    async def fake_spawn(command, args, **kwargs):
        return SpawnResult('{"result":"ok","num_turns":2,"total_cost_usd":0.5}', "", 0)

    monkeypatch.setattr(backend_base, "spawn_command", fake_spawn)
    caplog.set_level(logging.INFO, logger="agent_runner.events")
    observability = create_observability_manager()

    asyncio.run(ClaudeCodeBackend(observability=observability).run(RunRequest(prompt="hi")))

    snapshot = observability.metrics.snapshot()
    assert snapshot["counters"]["claude-code.runs"] == 1
    assert snapshot["durations"]["claude-code.run"]["count"] == 1.0
    assert snapshot["usage"] == {"cost_usd": 0.5, "turns": 2}
    event_types = [json.loads(record.message)["event_type"] for record in caplog.records]
    assert event_types == ["backend.run.start", "backend.run.finish"]


def test_backend_failure_is_logged_at_warning(monkeypatch: pytest.MonkeyPatch, caplog) -> None:
    async def fake_spawn(command, args, **kwargs):
        return SpawnResult("", "denied", 1)

    monkeypatch.setattr(backend_base, "spawn_command", fake_spawn)
    caplog.set_level(logging.WARNING, logger="agent_runner.events")
    observability = create_observability_manager()

    with pytest.raises(BackendProcessError):
        asyncio.run(ClaudeCodeBackend(observability=observability).run(RunRequest(prompt="hi")))

    assert observability.metrics.counters["claude-code.failures"] == 1
    failure = json.loads(caplog.records[-1].message)
    assert failure["event_type"] == "backend.run.failed"
    assert failure["payload"]["exit_code"] == 1
