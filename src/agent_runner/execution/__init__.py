"""Subprocess launchers for agent CLIs."""

from agent_runner.execution.base import RawStreamEvent, SettleLatch, SpawnResult
from agent_runner.execution.spawn import spawn_command
from agent_runner.execution.streaming import stream_command

__all__ = ["RawStreamEvent", "SettleLatch", "SpawnResult", "spawn_command", "stream_command"]
