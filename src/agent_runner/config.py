"""Configuration models and loaders for agent-runner."""

from __future__ import annotations

import json
import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

from agent_runner.backends.base import DEFAULT_TIMEOUT_S, ExecutionMode
from agent_runner.util.logging import normalize_level

CONFIG_FILE_NAMES: tuple[str, ...] = ("agent_runner.yaml", "agent_runner.yml")
ENV_BACKEND = "AGENT_RUNNER_BACKEND"
ENV_COMMAND = "AGENT_RUNNER_COMMAND"
ENV_TIMEOUT = "AGENT_RUNNER_TIMEOUT_S"


class ConfigError(ValueError):
    """Raised when a configuration file is missing required structure."""


@dataclass(frozen=True)
class RunDefaults:
    """Defaults applied to runs started from the CLI."""

    mode: ExecutionMode = ExecutionMode.FULL_ACCESS
    model: str | None = None
    timeout_s: float | None = DEFAULT_TIMEOUT_S
    env: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RunnerConfig:
    """Top-level configuration.

    Attributes:
        backend: Backend identifier ("claude-code", "codex", or "auto").
        command: Optional executable override for the selected backend.
        log_level: Logging level name for the CLI.
        defaults: Defaults applied to each run.
    """

    backend: str = "auto"
    command: str | None = None
    log_level: str = "WARNING"
    defaults: RunDefaults = field(default_factory=lambda: RunDefaults())


def load_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> RunnerConfig:
    """Load configuration from disk and apply environment overrides.

    Args:
        path: Optional path to a configuration file or directory.
        environ: Environment mapping to read overrides from (defaults to ``os.environ``).

    Returns:
        Parsed RunnerConfig with defaults applied when no config exists.
    """

    config_path = _resolve_config_path(path)
    if config_path is None:
        config = RunnerConfig()
    elif config_path.suffix in {".yaml", ".yml"}:
        config = _parse_runner_config(_load_yaml(config_path))
    elif config_path.name == "pyproject.toml" or config_path.suffix == ".toml":
        config = _parse_runner_config(_load_toml(config_path))
    else:
        raise ConfigError(f"Unsupported config file type: {config_path}")
    return apply_env_overrides(config, os.environ if environ is None else environ)


def apply_env_overrides(config: RunnerConfig, environ: Mapping[str, str]) -> RunnerConfig:
    """Return a config copy with ``AGENT_RUNNER_*`` variables applied."""

    backend = _optional_str(environ.get(ENV_BACKEND))
    command = _optional_str(environ.get(ENV_COMMAND))
    timeout = _optional_str(environ.get(ENV_TIMEOUT))
    if backend:
        config = replace(config, backend=backend)
    if command:
        config = replace(config, command=command)
    if timeout:
        try:
            timeout_s = float(timeout)
        except ValueError as exc:
            raise ConfigError(f"{ENV_TIMEOUT} must be a number, got {timeout!r}") from exc
        config = replace(config, defaults=replace(config.defaults, timeout_s=timeout_s))
    return config


def config_to_dict(config: RunnerConfig) -> dict[str, Any]:
    """Serialize a RunnerConfig into a JSON-compatible dictionary."""

    return {
        "backend": config.backend,
        "command": config.command,
        "log_level": config.log_level,
        "defaults": {
            "mode": config.defaults.mode.value,
            "model": config.defaults.model,
            "timeout_s": config.defaults.timeout_s,
            "env": dict(config.defaults.env),
        },
    }


def _resolve_config_path(path: Path | None) -> Path | None:
    candidate_paths: list[Path] = []
    if path is None:
        candidate_paths.extend(Path(name) for name in CONFIG_FILE_NAMES)
        candidate_paths.append(Path("pyproject.toml"))
    elif path.is_dir():
        candidate_paths.extend(path / name for name in CONFIG_FILE_NAMES)
        candidate_paths.append(path / "pyproject.toml")
    else:
        candidate_paths.append(path)

    for candidate in candidate_paths:
        if candidate.exists():
            return candidate
    return None


def _load_toml(path: Path) -> dict[str, Any]:
    with path.open("rb") as handle:
        data = tomllib.load(handle)
    if path.name == "pyproject.toml":
        tool_config = data.get("tool", {}).get("agent_runner", {})
        if not isinstance(tool_config, dict):
            raise ConfigError("tool.agent_runner must be a mapping.")
        return tool_config
    return data


def _load_yaml(path: Path) -> dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None
    if data is not None:
        if not isinstance(data, dict):
            raise ConfigError("YAML configuration must be a mapping.")
        return data
    try:
        import yaml  # type: ignore[import-untyped]
    except ImportError as exc:
        raise RuntimeError(
            "PyYAML is required to parse non-JSON YAML configuration files."
        ) from exc
    parsed = yaml.safe_load(text)
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ConfigError("YAML configuration must be a mapping.")
    return parsed


def _parse_runner_config(raw: dict[str, Any]) -> RunnerConfig:
    log_level = str(raw.get("log_level", "WARNING"))
    try:
        normalize_level(log_level)
    except ValueError as exc:
        raise ConfigError(f"log_level is not a logging level: {log_level!r}") from exc
    return RunnerConfig(
        backend=str(raw.get("backend", "auto")),
        command=_optional_str(raw.get("command")),
        log_level=log_level,
        defaults=_parse_run_defaults(raw.get("defaults", {})),
    )


def _parse_run_defaults(raw: Any) -> RunDefaults:
    if not isinstance(raw, dict):
        return RunDefaults()
    env = raw.get("env", {})
    env_map: dict[str, str] = {}
    if isinstance(env, dict):
        env_map = {str(key): str(value) for key, value in env.items()}
    try:
        mode = ExecutionMode(str(raw.get("mode", ExecutionMode.FULL_ACCESS.value)))
    except ValueError as exc:
        valid = ", ".join(item.value for item in ExecutionMode)
        raise ConfigError(f"defaults.mode must be one of: {valid}") from exc
    timeout = raw.get("timeout_s", DEFAULT_TIMEOUT_S)
    return RunDefaults(
        mode=mode,
        model=_optional_str(raw.get("model")),
        timeout_s=float(timeout) if timeout is not None else None,
        env=env_map,
    )


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
