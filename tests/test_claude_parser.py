from __future__ import annotations

import json

from agent_runner.backends.base import StreamEvent, ToolUse
from agent_runner.backends.claude_code import (
    ClaudeTurnParser,
    parse_claude_json,
    parse_claude_stream_line,
    parse_claude_verbose,
)


def test_parses_string_result_and_session() -> None:
    parsed = parse_claude_json('{"result":"Hello world","session_id":"abc-123"}')

    assert parsed.text == "Hello world"
    assert parsed.session_id == "abc-123"
    assert parsed.tool_uses is None


def test_parses_array_of_blocks_result() -> None:
    raw = json.dumps(
        {
            "result": [
                {"type": "text", "text": "Line 1"},
                {"type": "tool_use", "name": "bash"},
                {"type": "text", "text": "Line 2"},
            ],
            "session_id": "sess-456",
        }
    )

    parsed = parse_claude_json(raw)

    assert parsed.text == "Line 1\nLine 2"
    assert parsed.session_id == "sess-456"


def test_accepts_camel_case_session_id() -> None:
    parsed = parse_claude_json('{"result":"ok","sessionId":"id-789"}')

    assert parsed.session_id == "id-789"


def test_snake_case_session_id_wins_over_camel_case() -> None:
    parsed = parse_claude_json('{"result":"ok","session_id":"snake","sessionId":"camel"}')

    assert parsed.session_id == "snake"


def test_empty_string_result_is_valid_text() -> None:
    parsed = parse_claude_json('{"result":"","session_id":"s"}')

    assert parsed.text == ""
    assert parsed.session_id == "s"


def test_falls_back_to_trimmed_raw_text_on_invalid_json() -> None:
    parsed = parse_claude_json("  just plain text\n")

    assert parsed.text == "just plain text"
    assert parsed.session_id is None


def test_falls_back_to_raw_on_unexpected_shape() -> None:
    raw = json.dumps({"foo": "bar"})

    parsed = parse_claude_json(raw)

    assert parsed.text == raw
    assert parsed.session_id is None


def test_non_object_json_falls_back_to_raw() -> None:
    assert parse_claude_json("[1, 2]").text == "[1, 2]"
    assert parse_claude_json("null").text == "null"


def test_empty_result_array_falls_back_to_raw_json() -> None:
    raw = '{"result":[],"session_id":"s1"}'

    assert parse_claude_json(raw).text == raw


def test_surfaces_turns_and_cost_for_any_shape() -> None:
    parsed = parse_claude_json(
        '{"type":"result","result":"done","num_turns":3,"total_cost_usd":0.0123}'
    )
    unknown_shape = parse_claude_json('{"num_turns":2,"cost_usd":0.5}')

    assert parsed.num_turns == 3
    assert parsed.cost_usd == 0.0123
    assert unknown_shape.num_turns == 2
    assert unknown_shape.cost_usd == 0.5


def test_collects_tool_uses_in_source_order() -> None:
    raw = json.dumps(
        {
            "result": [
                {"type": "tool_use", "name": "Read", "input": {"file_path": "a.py"}},
                {"type": "text", "text": "checked"},
                {"type": "tool_use", "name": "Bash", "input": {"command": "ls -la"}},
                {"type": "tool_use", "name": "Grep", "input": {"pattern": "x", "nested": [1]}},
            ]
        }
    )

    parsed = parse_claude_json(raw)

    assert parsed.tool_uses == [
        ToolUse("Read", {"file_path": "a.py"}),
        ToolUse("Bash", {"command": "ls -la"}),
        ToolUse("Grep", {"pattern": "x", "nested": [1]}),
    ]


def test_parsing_is_idempotent() -> None:
    raw = '{"result":[{"type":"text","text":"a"},{"type":"tool_use","name":"t"}]}'

    assert parse_claude_json(raw) == parse_claude_json(raw)


def test_stream_result_line_matches_single_shot_text() -> None:
    documents = [
        {"type": "result", "result": "Hello", "session_id": "s"},
        {"type": "result", "result": [{"type": "text", "text": "A"}, {"type": "text", "text": "B"}]},
        {"type": "result", "result": []},
    ]
    for document in documents:
        line = json.dumps(document)

        events = parse_claude_stream_line(line)

        assert events == [StreamEvent("text", parse_claude_json(line).text)]


def test_stream_assistant_message_yields_text_and_tool_use() -> None:
    line = json.dumps(
        {
            "type": "assistant",
            "message": {
                "content": [
                    {"type": "text", "text": "Let me look."},
                    {"type": "tool_use", "id": "tu1", "name": "Read", "input": {"file_path": "x"}},
                ]
            },
        }
    )

    events = parse_claude_stream_line(line)

    assert events[0] == StreamEvent("text", "Let me look.")
    assert events[1].type == "tool_use"
    assert json.loads(events[1].data) == {"name": "Read", "input": {"file_path": "x"}}


def test_stream_tool_result_is_serialized_and_capped() -> None:
    plain = json.dumps(
        {
            "type": "user",
            "message": {"content": [{"type": "tool_result", "content": "file contents"}]},
        }
    )
    blocks = json.dumps(
        {
            "type": "user",
            "message": {
                "content": [
                    {"type": "tool_result", "content": [{"type": "text", "text": "x" * 5000}]}
                ]
            },
        }
    )

    assert parse_claude_stream_line(plain) == [StreamEvent("tool_result", "file contents")]
    capped = parse_claude_stream_line(blocks)[0]
    assert capped.type == "tool_result"
    assert len(capped.data) < 5000


def test_stream_text_delta_events() -> None:
    bare = '{"type":"content_block_delta","delta":{"type":"text_delta","text":"Hel"}}'
    wrapped = json.dumps(
        {
            "type": "stream_event",
            "event": {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "lo"}},
        }
    )

    assert parse_claude_stream_line(bare) == [StreamEvent("text", "Hel")]
    assert parse_claude_stream_line(wrapped) == [StreamEvent("text", "lo")]


def test_stream_discards_unknown_events_and_blank_lines() -> None:
    assert parse_claude_stream_line('{"type":"system","subtype":"init","session_id":"s"}') == []
    assert parse_claude_stream_line('{"type":"ping"}') == []
    assert parse_claude_stream_line("   ") == []


def test_stream_malformed_json_is_literal_text() -> None:
    assert parse_claude_stream_line("Warning: something odd") == [
        StreamEvent("text", "Warning: something odd")
    ]


def test_stream_error_result_becomes_error_event() -> None:
    line = '{"type":"result","subtype":"error_during_execution","is_error":true}'

    assert parse_claude_stream_line(line) == [StreamEvent("error", "error_during_execution")]


def _verbose_transcript() -> str:
    lines = [
        {"type": "system", "subtype": "init", "session_id": "sess-v"},
        {
            "type": "assistant",
            "message": {
                "content": [
                    {"type": "tool_use", "name": "Read", "input": {"file_path": "a.py"}},
                ]
            },
        },
        {"type": "user", "message": {"content": [{"type": "tool_result", "content": "..."}]}},
        {
            "type": "assistant",
            "message": {
                "content": [
                    {"type": "text", "text": "Editing now."},
                    {"type": "tool_use", "name": "Edit", "input": {"file_path": "a.py"}},
                ]
            },
        },
        {"type": "assistant", "message": {"content": [{"type": "text", "text": "Done."}]}},
        {
            "type": "result",
            "subtype": "success",
            "result": "Done.",
            "session_id": "sess-v",
            "num_turns": 3,
            "total_cost_usd": 0.02,
        },
    ]
    return "\n".join(json.dumps(line) for line in lines) + "\n"


def test_verbose_parser_accumulates_tool_uses_across_turns() -> None:
    parsed = parse_claude_verbose(_verbose_transcript())

    assert parsed.text == "Done."
    assert parsed.session_id == "sess-v"
    assert parsed.num_turns == 3
    assert parsed.cost_usd == 0.02
    assert parsed.tool_uses == [
        ToolUse("Read", {"file_path": "a.py"}),
        ToolUse("Edit", {"file_path": "a.py"}),
    ]


def test_verbose_parser_without_result_line_uses_assistant_text() -> None:
    parser = ClaudeTurnParser()
    parser.feed('{"type":"system","subtype":"init","session_id":"s-2"}')
    parser.feed('{"type":"assistant","message":{"content":[{"type":"text","text":"partial"}]}}')

    parsed = parser.finish()

    assert parsed.text == "partial"
    assert parsed.session_id == "s-2"
    assert parsed.tool_uses is None


def test_verbose_parser_ignores_lines_after_result() -> None:
    transcript = _verbose_transcript() + (
        '{"type":"assistant","message":{"content":[{"type":"tool_use","name":"Late"}]}}\n'
    )

    parsed = parse_claude_verbose(transcript)

    assert [tool.name for tool in parsed.tool_uses or []] == ["Read", "Edit"]


def test_verbose_parser_with_plain_text_falls_back_to_raw() -> None:
    assert parse_claude_verbose("not json at all\n").text == "not json at all"
