"""Codex CLI backend."""

from __future__ import annotations

import json
from typing import Any

from agent_runner.backends.base import (
    CliBackend,
    ExecutionMode,
    ParsedOutput,
    RunRequest,
    StreamEvent,
    ToolUse,
    excerpt,
    optional_str,
    serialize_payload,
)

MODE_FLAGS: dict[ExecutionMode, list[str]] = {
    ExecutionMode.PRINT: ["--sandbox", "read-only"],
    ExecutionMode.FULL_ACCESS: ["--dangerously-bypass-approvals-and-sandbox"],
    ExecutionMode.WORKSPACE_WRITE: ["--sandbox", "workspace-write", "--full-auto"],
}

TOOL_ITEM_TYPES = frozenset({"command_execution", "mcp_tool_call", "file_change", "web_search"})


def _item_type(item: dict[str, Any]) -> str | None:
    # Older codex releases used "item_type" instead of "type".
    return optional_str(item.get("type")) or optional_str(item.get("item_type"))


def _assistant_message_text(event: dict[str, Any]) -> str | None:
    """Extract text from a legacy ``{"type": "message", "role": "assistant"}`` event."""

    if event.get("role") != "assistant":
        return None
    content = event.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            part["text"]
            for part in content
            if isinstance(part, dict)
            and part.get("type") == "output_text"
            and isinstance(part.get("text"), str)
        ]
        if parts:
            return "\n".join(parts)
    return None


def _tool_use(item: dict[str, Any]) -> ToolUse:
    item_type = _item_type(item) or "tool"
    if item_type == "command_execution":
        return ToolUse(name=item_type, input={"command": item.get("command")})
    if item_type == "mcp_tool_call":
        name = ".".join(
            str(part) for part in (item.get("server"), item.get("tool")) if part
        )
        return ToolUse(name=name or item_type, input=item.get("arguments"))
    if item_type == "file_change":
        return ToolUse(name=item_type, input={"changes": item.get("changes")})
    if item_type == "web_search":
        return ToolUse(name=item_type, input={"query": item.get("query")})
    return ToolUse(name=item_type, input=item)


def _tool_output(item: dict[str, Any]) -> str:
    if _item_type(item) == "command_execution" and isinstance(item.get("aggregated_output"), str):
        return excerpt(item["aggregated_output"])
    if _item_type(item) == "mcp_tool_call" and "result" in item:
        return excerpt(serialize_payload(item["result"]))
    return excerpt(serialize_payload(item))


def parse_codex_jsonl(raw: str) -> ParsedOutput:
    """Parse ``codex exec --json`` output (newline-delimited events).

    The session comes from the ``thread.started`` event, or from the first event
    carrying a thread/session identifier. Text comes from completed
    ``agent_message`` items or from legacy assistant ``message`` events. When no
    assistant content is found, the last non-empty line stands in for the text.
    """

    lines = [line.strip() for line in raw.strip().splitlines() if line.strip()]
    texts: list[str] = []
    session_id: str | None = None
    fallback_session_id: str | None = None
    tool_uses: dict[str, ToolUse] = {}
    turns = 0

    for index, line in enumerate(lines):
        try:
            event = json.loads(line)
        except (json.JSONDecodeError, ValueError):
            continue
        if not isinstance(event, dict):
            continue

        event_type = event.get("type")
        if event_type == "thread.started" and optional_str(event.get("thread_id")):
            session_id = event["thread_id"]
        elif fallback_session_id is None:
            fallback_session_id = optional_str(event.get("thread_id")) or optional_str(
                event.get("session_id")
            )

        if event_type in {"item.started", "item.updated", "item.completed"}:
            item = event.get("item")
            if not isinstance(item, dict):
                continue
            item_type = _item_type(item)
            if item_type == "agent_message" and event_type == "item.completed":
                if isinstance(item.get("text"), str):
                    texts.append(item["text"])
            elif item_type in TOOL_ITEM_TYPES:
                key = optional_str(item.get("id")) or f"line-{index}"
                tool_uses.setdefault(key, _tool_use(item))
        elif event_type == "message":
            text = _assistant_message_text(event)
            if text is not None:
                texts.append(text)
        elif event_type == "turn.completed":
            turns += 1

    if texts:
        text = "\n".join(texts)
    else:
        text = lines[-1] if lines else raw.strip()
    return ParsedOutput(
        text=text,
        session_id=session_id or fallback_session_id,
        num_turns=turns or None,
        tool_uses=list(tool_uses.values()) or None,
    )


def parse_codex_stream_line(line: str) -> list[StreamEvent]:
    """Parse one line of ``codex exec --json`` output into stream events."""

    if not line.strip():
        return []
    try:
        event = json.loads(line)
    except (json.JSONDecodeError, ValueError):
        return [StreamEvent("text", line)]
    if not isinstance(event, dict):
        return []

    event_type = event.get("type")
    if event_type in {"item.started", "item.completed"}:
        item = event.get("item")
        if not isinstance(item, dict):
            return []
        item_type = _item_type(item)
        if item_type == "agent_message" and event_type == "item.completed":
            text = optional_str(item.get("text"))
            return [StreamEvent("text", text)] if text else []
        if item_type in TOOL_ITEM_TYPES:
            if event_type == "item.started":
                tool = _tool_use(item)
                payload = serialize_payload({"name": tool.name, "input": tool.input})
                return [StreamEvent("tool_use", payload)]
            return [StreamEvent("tool_result", _tool_output(item))]
        return []
    if event_type == "message":
        text = _assistant_message_text(event)
        return [StreamEvent("text", text)] if text else []
    if event_type == "error":
        return [StreamEvent("error", optional_str(event.get("message")) or "codex error")]
    if event_type == "turn.failed":
        error = event.get("error")
        message = optional_str(error.get("message")) if isinstance(error, dict) else None
        return [StreamEvent("error", message or "codex turn failed")]
    return []


class CodexBackend(CliBackend):
    """Runs prompts through ``codex exec``."""

    name = "codex"
    default_command = "codex"
    install_hint = "codex (npm install -g @openai/codex)"

    def build_args(self, request: RunRequest, *, streaming: bool) -> list[str]:
        # `codex exec --json` already emits newline-delimited events, so the
        # streaming and buffered invocations are identical.
        args = ["exec", "--json", "--color", "never"]
        args.extend(MODE_FLAGS[request.mode])
        args.append("--skip-git-repo-check")
        if request.model:
            args.extend(["--model", request.model])
        if request.system_prompt:
            args.extend(["-c", f"developer_instructions={json.dumps(request.system_prompt)}"])
        if request.allowed_tools:
            self._logger.debug("codex has no tool allow-list; ignoring %s", request.allowed_tools)
        if request.max_budget_usd is not None:
            self._logger.debug("codex has no spend ceiling; ignoring %s", request.max_budget_usd)
        args.extend(request.extra_args)
        if request.session_id:
            # The resume subcommand takes the session and prompt positionally.
            args.extend(["resume", request.session_id])
        args.append(request.prompt)
        return args

    def parse_output(self, stdout: str, request: RunRequest) -> ParsedOutput:
        return parse_codex_jsonl(stdout)

    def parse_stream_line(self, line: str) -> list[StreamEvent]:
        return parse_codex_stream_line(line)
