"""Claude Code CLI backend."""

from __future__ import annotations

import json
from dataclasses import replace
from typing import Any

from agent_runner.backends.base import (
    CliBackend,
    ExecutionMode,
    ParsedOutput,
    RunRequest,
    StreamEvent,
    ToolUse,
    excerpt,
    optional_float,
    optional_int,
    optional_str,
    serialize_payload,
)

MODE_FLAGS: dict[ExecutionMode, list[str]] = {
    ExecutionMode.PRINT: [],
    ExecutionMode.FULL_ACCESS: ["--dangerously-skip-permissions"],
    ExecutionMode.WORKSPACE_WRITE: ["--permission-mode", "acceptEdits"],
}


def parse_claude_json(raw: str) -> ParsedOutput:
    """Parse ``claude --output-format json`` output.

    The document carries ``result`` either as a string or, in newer CLI versions,
    as an array of typed content blocks. Anything that is not such a document
    comes back as the trimmed raw text.
    """

    try:
        document = json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        return ParsedOutput(text=raw.strip())
    if not isinstance(document, dict):
        return ParsedOutput(text=raw.strip())
    return _reduce_result_document(document, raw)


def _reduce_result_document(document: dict[str, Any], raw: str) -> ParsedOutput:
    session_id = optional_str(document.get("session_id")) or optional_str(
        document.get("sessionId")
    )
    num_turns = optional_int(document.get("num_turns"))
    cost_usd = optional_float(document.get("total_cost_usd"))
    if cost_usd is None:
        cost_usd = optional_float(document.get("cost_usd"))

    result = document.get("result")
    if isinstance(result, str):
        return ParsedOutput(result, session_id, num_turns, cost_usd)
    if isinstance(result, list):
        texts, tool_uses = _reduce_blocks(result)
        text = "\n".join(texts) if texts else raw.strip()
        return ParsedOutput(text, session_id, num_turns, cost_usd, tool_uses or None)
    return ParsedOutput(raw.strip(), num_turns=num_turns, cost_usd=cost_usd)


def _reduce_blocks(blocks: list[Any]) -> tuple[list[str], list[ToolUse]]:
    texts: list[str] = []
    tool_uses: list[ToolUse] = []
    for block in blocks:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text" and isinstance(block.get("text"), str):
            texts.append(block["text"])
        elif block_type == "tool_use":
            tool_uses.append(ToolUse(name=str(block.get("name", "")), input=block.get("input")))
    return texts, tool_uses


def _tool_use_payload(block: dict[str, Any]) -> str:
    return serialize_payload({"name": block.get("name", ""), "input": block.get("input")})


def _tool_result_payload(block: dict[str, Any]) -> str:
    content = block.get("content")
    if isinstance(content, list):
        parts = [
            part["text"]
            for part in content
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        ]
        if parts:
            return excerpt("\n".join(parts))
    return excerpt(serialize_payload(content if content is not None else ""))


def _message_blocks(event: dict[str, Any]) -> list[dict[str, Any]]:
    message = event.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if not isinstance(content, list):
        return []
    return [block for block in content if isinstance(block, dict)]


def _delta_text(event: dict[str, Any]) -> str | None:
    delta = event.get("delta")
    if isinstance(delta, dict) and delta.get("type") == "text_delta":
        return optional_str(delta.get("text"))
    return None


def parse_claude_stream_line(line: str) -> list[StreamEvent]:
    """Parse one line of ``--output-format stream-json`` output.

    Unknown event types (system init, status, pings) produce no events so that
    newer CLI versions keep working. Lines that are not JSON are passed through
    as text.
    """

    if not line.strip():
        return []
    try:
        event = json.loads(line)
    except (json.JSONDecodeError, ValueError):
        return [StreamEvent("text", line)]
    if not isinstance(event, dict):
        return []

    event_type = event.get("type")
    if event_type == "assistant":
        events: list[StreamEvent] = []
        for block in _message_blocks(event):
            if block.get("type") == "text" and isinstance(block.get("text"), str):
                if block["text"]:
                    events.append(StreamEvent("text", block["text"]))
            elif block.get("type") == "tool_use":
                events.append(StreamEvent("tool_use", _tool_use_payload(block)))
        return events
    if event_type == "user":
        return [
            StreamEvent("tool_result", _tool_result_payload(block))
            for block in _message_blocks(event)
            if block.get("type") == "tool_result"
        ]
    if event_type == "stream_event" and isinstance(event.get("event"), dict):
        event = event["event"]
        event_type = event.get("type")
    if event_type == "content_block_delta":
        text = _delta_text(event)
        return [StreamEvent("text", text)] if text else []
    if event_type == "result":
        if event.get("is_error"):
            message = optional_str(event.get("result")) or str(event.get("subtype") or "error")
            return [StreamEvent("error", message)]
        return [StreamEvent("text", _reduce_result_document(event, line).text)]
    return []


class ClaudeTurnParser:
    """Accumulates a verbose ``stream-json`` transcript turn by turn.

    Tool invocations from every assistant turn are collected until the terminal
    ``result`` line, which supplies text, session, turns, and cost exactly as
    ``parse_claude_json`` would.
    """

    def __init__(self) -> None:
        self._lines: list[str] = []
        self._texts: list[str] = []
        self._tool_uses: list[ToolUse] = []
        self._session_id: str | None = None
        self._result: ParsedOutput | None = None

    def feed(self, line: str) -> None:
        stripped = line.strip()
        if not stripped or self._result is not None:
            return
        self._lines.append(stripped)
        try:
            event = json.loads(stripped)
        except (json.JSONDecodeError, ValueError):
            return
        if not isinstance(event, dict):
            return

        event_type = event.get("type")
        if event_type == "system":
            self._session_id = self._session_id or optional_str(event.get("session_id"))
        elif event_type == "assistant":
            texts, tool_uses = _reduce_blocks(_message_blocks(event))
            self._texts.extend(texts)
            self._tool_uses.extend(tool_uses)
        elif event_type == "result":
            self._result = parse_claude_json(stripped)

    def finish(self) -> ParsedOutput:
        if self._result is None:
            text = "\n".join(self._texts) if self._texts else "\n".join(self._lines)
            return ParsedOutput(text, self._session_id, tool_uses=self._tool_uses or None)
        tool_uses = self._tool_uses + (self._result.tool_uses or [])
        return replace(
            self._result,
            session_id=self._result.session_id or self._session_id,
            tool_uses=tool_uses or None,
        )


def parse_claude_verbose(raw: str) -> ParsedOutput:
    """Parse a complete ``stream-json --verbose`` transcript."""

    parser = ClaudeTurnParser()
    for line in raw.splitlines():
        parser.feed(line)
    return parser.finish()


class ClaudeCodeBackend(CliBackend):
    """Runs prompts through the ``claude`` CLI in print mode."""

    name = "claude-code"
    default_command = "claude"
    install_hint = "claude (npm install -g @anthropic-ai/claude-code)"

    def build_args(self, request: RunRequest, *, streaming: bool) -> list[str]:
        structured = streaming or request.verbose
        args = ["-p", "--output-format", "stream-json" if structured else "json"]
        if structured:
            args.append("--verbose")
        args.extend(MODE_FLAGS[request.mode])
        if request.model:
            args.extend(["--model", request.model])
        if request.session_id:
            args.extend(["--resume", request.session_id])
        if request.system_prompt:
            args.extend(["--append-system-prompt", request.system_prompt])
        if request.allowed_tools:
            args.extend(["--allowedTools", ",".join(request.allowed_tools)])
        if request.max_budget_usd is not None:
            args.extend(["--max-budget-usd", str(request.max_budget_usd)])
        args.extend(request.extra_args)
        args.append(request.prompt)
        return args

    def parse_output(self, stdout: str, request: RunRequest) -> ParsedOutput:
        if request.verbose:
            return parse_claude_verbose(stdout)
        return parse_claude_json(stdout)

    def parse_stream_line(self, line: str) -> list[StreamEvent]:
        return parse_claude_stream_line(line)
