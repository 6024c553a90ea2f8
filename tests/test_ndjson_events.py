"""
NDJSON 解析与 AgentEvent 分类测试
"""

import json

from acp_bridge.streaming.events import (
    AssistantTextDelta,
    Done,
    ErrorEvent,
    OtherEvent,
    ThinkingDelta,
    ToolInvocation,
    normalize_tool_name,
    parse_agent_event,
)
from acp_bridge.streaming.ndjson import LineBuffer, ndjson_decode_line, parse_ndjson_stream

from conftest import assistant_line, thinking_line, tool_call_line


class TestNdjsonDecodeLine:
    def test_object_with_whitespace(self):
        assert ndjson_decode_line('  {"type":"result"}\n') == {"type": "result"}

    def test_empty_and_blank(self):
        assert ndjson_decode_line("") is None
        assert ndjson_decode_line("   \t ") is None

    def test_malformed_json(self):
        """解析失败不抛异常"""
        assert ndjson_decode_line("{not json") is None

    def test_non_objects_rejected(self):
        assert ndjson_decode_line("[1, 2]") is None
        assert ndjson_decode_line("42") is None
        assert ndjson_decode_line("null") is None
        assert ndjson_decode_line('"text"') is None

    def test_parse_stream_skips_bad_lines(self):
        stream = '{"a":1}\ngarbage\n\n[1]\n{"b":2}'
        assert list(parse_ndjson_stream(stream)) == [{"a": 1}, {"b": 2}]


class TestLineBuffer:
    def test_split_across_chunks(self):
        buffer = LineBuffer()
        assert buffer.push(b'{"type":"ass') == []
        assert buffer.push(b'istant"}\n{"x"') == ['{"type":"assistant"}']
        assert buffer.push(b":1}\n") == ['{"x":1}']
        assert buffer.flush() == []

    def test_multibyte_character_split(self):
        data = '{"text":"你好"}\n'.encode("utf-8")
        buffer = LineBuffer()
        lines = buffer.push(data[:11]) + buffer.push(data[11:])
        assert lines == ['{"text":"你好"}']

    def test_flush_returns_trailing_line(self):
        buffer = LineBuffer()
        buffer.push("first\nsecond")
        assert buffer.flush() == ["second"]

    def test_blank_lines_dropped(self):
        assert LineBuffer().push("\n\n  \nx\n") == ["x"]


class TestParseAgentEvent:
    def test_partial_assistant_text(self):
        event = parse_agent_event(assistant_line("Hel"))
        assert isinstance(event, AssistantTextDelta)
        assert event.text == "Hel"
        assert event.partial is True

    def test_final_assistant_text(self):
        event = parse_agent_event(assistant_line("Hello", partial=False))
        assert isinstance(event, AssistantTextDelta)
        assert event.partial is False

    def test_raw_is_preserved(self):
        line = assistant_line("Hi")
        assert parse_agent_event(line).raw == json.loads(line)

    def test_thinking_event(self):
        event = parse_agent_event(thinking_line("Analyzing"))
        assert isinstance(event, ThinkingDelta)
        assert event.text == "Analyzing"

    def test_assistant_thinking_part(self):
        line = json.dumps({
            "type": "assistant",
            "message": {"content": [{"type": "thinking", "thinking": "hmm"}]},
        })
        event = parse_agent_event(line)
        assert isinstance(event, ThinkingDelta)
        assert event.text == "hmm"

    def test_tool_call(self):
        event = parse_agent_event(tool_call_line("readToolCall", {"path": "a.txt"}))
        assert isinstance(event, ToolInvocation)
        assert event.tool_name == "read"
        assert event.call_id == "call_1"
        assert event.args == {"path": "a.txt"}
        assert event.args_present is True
        assert event.is_started is True

    def test_completed_tool_call_not_started(self):
        event = parse_agent_event(tool_call_line("readToolCall", {}, subtype="completed"))
        assert event.is_started is False

    def test_result_done_and_error(self):
        assert isinstance(parse_agent_event('{"type":"result","is_error":false}'), Done)
        event = parse_agent_event('{"type":"result","is_error":true,"result":"boom"}')
        assert isinstance(event, ErrorEvent)
        assert event.raw_message == "boom"

    def test_error_event(self):
        event = parse_agent_event('{"type":"error","error":{"message":"not logged in"}}')
        assert isinstance(event, ErrorEvent)
        assert event.raw_message == "not logged in"

    def test_other_event(self):
        event = parse_agent_event('{"type":"system","subtype":"init"}')
        assert isinstance(event, OtherEvent)
        assert event.type == "system"

    def test_malformed_line(self):
        assert parse_agent_event("{oops") is None


class TestNormalizeToolName:
    def test_tool_call_suffix(self):
        assert normalize_tool_name("readToolCall") == "read"
        assert normalize_tool_name("ShellToolCall") == "shell"

    def test_other_names_untouched(self):
        assert normalize_tool_name("read") == "read"
        assert normalize_tool_name("ToolCallHelper") == "ToolCallHelper"
