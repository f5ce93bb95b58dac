"""Application wiring for CLI-friendly runs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from agent_runner.backends.base import ExecutionMode, RunRequest
from agent_runner.config import RunnerConfig, config_to_dict, load_config
from agent_runner.runner import AgentRunner
from agent_runner.util.logging import get_logger
from agent_runner.util.observability import ObservabilityManager, create_observability_manager


class AppConfigError(RuntimeError):
    """Raised when configuration or runtime setup fails."""


_LOGGER = get_logger("agent_runner.app")


def initialize_config(workspace: Path) -> Path:
    """Create a default configuration file in the workspace.

    Args:
        workspace: Directory where the config should be written.

    Returns:
        Path to the generated configuration file.

    Raises:
        AppConfigError: If the config file already exists.
    """

    workspace = workspace.resolve()
    config_path = workspace / "agent_runner.yaml"
    if config_path.exists():
        raise AppConfigError(
            f"Config file already exists at {config_path}. Remove it or choose another "
            "directory."
        )
    config_path.write_text(json.dumps(config_to_dict(RunnerConfig()), indent=2), encoding="utf-8")
    _LOGGER.info("Initialized configuration at %s", config_path)
    return config_path


def load_app_config(config_path: Path | None = None) -> RunnerConfig:
    """Load configuration, wrapping loader failures in ``AppConfigError``."""

    try:
        return load_config(config_path)
    except (ValueError, RuntimeError, OSError) as exc:
        raise AppConfigError(f"Failed to load configuration: {exc}") from exc


def create_runner(
    config: RunnerConfig,
    *,
    backend: str | None = None,
    command: str | None = None,
    observability: ObservabilityManager | None = None,
) -> AgentRunner:
    """Build an AgentRunner from configuration and optional overrides."""

    return AgentRunner(
        backend or config.backend,
        command or config.command,
        observability=observability or create_observability_manager(),
    )


def build_request(config: RunnerConfig, prompt: str, **overrides: Any) -> RunRequest:
    """Build a RunRequest from configured defaults and explicit overrides.

    Overrides whose value is None fall back to the configured default.
    """

    defaults = config.defaults
    fields: dict[str, Any] = {
        "mode": defaults.mode,
        "model": defaults.model,
        "timeout_s": defaults.timeout_s,
        "env": dict(defaults.env) or None,
    }
    fields.update({key: value for key, value in overrides.items() if value is not None})
    if isinstance(fields["mode"], str):
        fields["mode"] = ExecutionMode(fields["mode"])
    return RunRequest(prompt=prompt, **fields)
