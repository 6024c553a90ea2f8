"""
工具循环守卫测试
"""

import json

from acp_bridge.proxy.tool_loop_guard import ToolLoopGuard, classify_tool_result, format_guard_message
from acp_bridge.proxy.types import OpenAiFunction, OpenAiToolCall


def _call(name, args, call_id="call_new"):
    return OpenAiToolCall(id=call_id, function=OpenAiFunction(name=name, arguments=json.dumps(args)))


def _history(name, args, result, times):
    messages = [{"role": "user", "content": "go"}]
    for i in range(times):
        call_id = f"call_{i}"
        messages.append({"role": "assistant", "content": None, "tool_calls": [_call(name, args, call_id).to_dict()]})
        messages.append({"role": "tool", "tool_call_id": call_id, "content": result})
    return messages


class TestClassifyToolResult:
    def test_classes(self):
        assert classify_tool_result("Missing required argument: path") == "validation"
        assert classify_tool_result("ENOENT: no such file") == "not_found"
        assert classify_tool_result("Permission denied") == "permission"
        assert classify_tool_result("command timed out") == "timeout"
        assert classify_tool_result("File written successfully") == "success"
        assert classify_tool_result("Error: boom") == "tool_error"
        assert classify_tool_result("plain output") == "unknown"
        assert classify_tool_result(None) == "unknown"

    def test_list_content(self):
        assert classify_tool_result([{"type": "text", "text": "not found"}]) == "not_found"


class TestToolLoopGuard:
    def test_repeated_failure_triggers(self):
        """同一失败调用第 4 次时触发 (max_repeat=3)"""
        messages = _history("read", {"path": "/x"}, "Error: ENOENT not found", 3)
        guard = ToolLoopGuard(messages, max_repeat=3)
        decision = guard.evaluate(_call("read", {"path": "/x"}))
        assert decision.triggered is True
        assert decision.error_class == "not_found"
        assert decision.repeat_count == 4
        assert decision.fingerprint.startswith("read|")
        assert decision.fingerprint.endswith("|not_found")

    def test_below_limit_passes(self):
        messages = _history("read", {"path": "/x"}, "Error: ENOENT not found", 2)
        decision = ToolLoopGuard(messages, max_repeat=3).evaluate(_call("read", {"path": "/x"}))
        assert decision.triggered is False

    def test_success_with_different_values_not_blocked(self):
        messages = _history("read", {"path": "/a"}, "contents", 5)
        decision = ToolLoopGuard(messages, max_repeat=3).evaluate(_call("read", {"path": "/b"}))
        assert decision.error_class == "success"
        assert decision.triggered is False

    def test_success_with_identical_values_blocked(self):
        messages = _history("read", {"path": "/a"}, "contents", 3)
        decision = ToolLoopGuard(messages, max_repeat=3).evaluate(_call("read", {"path": "/a"}))
        assert decision.fingerprint.startswith("read|values:")
        assert decision.triggered is True

    def test_empty_history(self):
        decision = ToolLoopGuard([], max_repeat=3).evaluate(_call("edit", {"path": "/a"}))
        assert decision.triggered is False

    def test_guard_message(self):
        messages = _history("read", {"path": "/x"}, "Error: ENOENT not found", 3)
        call = _call("read", {"path": "/x"})
        decision = ToolLoopGuard(messages, max_repeat=3).evaluate(call)
        text = format_guard_message(call, decision)
        assert "Tool loop guard" in text
        assert "`read`" in text
