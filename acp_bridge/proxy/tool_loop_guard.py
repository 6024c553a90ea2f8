"""
工具循环守卫

Detects a caller stuck re-issuing the same tool call. The request's message
history is replayed first: every earlier assistant tool call is classified by
its matching role:"tool" result and counted by fingerprint. evaluate() then
counts the candidate call; once a fingerprint is seen more than max_repeat
times the guard triggers.

Fingerprints:
- failures:  name|<argument shape>|<class>   and the coarse name|<class>
- successes: name|values:<hash>|success      (identical arguments only)
- edit/write success with the same path and an empty old_string:
             name|path:<hash>|success
"""

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .types import OpenAiToolCall

__all__ = [
    "ToolLoopGuard",
    "GuardDecision",
    "classify_tool_result",
    "format_guard_message",
]

# 这些工具的结果即使无法识别也视为成功
_UNKNOWN_AS_SUCCESS_TOOLS = {"bash", "read", "grep", "ls", "glob", "stat", "webfetch"}

_VALIDATION_MARKERS = (
    "missing required", "invalid", "schema", "unexpected", "type error", "must be of type",
)
_NOT_FOUND_MARKERS = ("enoent", "not found", "no such file")
_PERMISSION_MARKERS = ("permission denied", "eacces", "forbidden")
_TIMEOUT_MARKERS = ("timeout", "timed out")
_TODO_MARKERS = ("# todos", "\n[ ] ", "\n[x] ", "\n[x]")
_SUCCESS_MARKERS = ("success", "completed", '"ok":true', '"success":true')
_TOOL_ERROR_MARKERS = ("error", "failed", '"is_error":true', '"success":false')


@dataclass
class GuardDecision:
    fingerprint: str
    repeat_count: int
    max_repeat: int
    error_class: str
    triggered: bool


def _render_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        rendered = []
        for part in content:
            if isinstance(part, str):
                rendered.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                rendered.append(part["text"])
            else:
                rendered.append(json.dumps(part, separators=(",", ":")))
        return " ".join(rendered)
    if content is None:
        return ""
    return json.dumps(content, separators=(",", ":"))


def classify_tool_result(content: Any) -> str:
    """validation | not_found | permission | timeout | success | tool_error | unknown"""
    text = _render_content(content).strip().lower()
    if not text:
        return "unknown"
    if any(m in text for m in _VALIDATION_MARKERS):
        return "validation"
    if any(m in text for m in _NOT_FOUND_MARKERS):
        return "not_found"
    if any(m in text for m in _PERMISSION_MARKERS):
        return "permission"
    if any(m in text for m in _TIMEOUT_MARKERS):
        return "timeout"
    if any(m in text for m in _TODO_MARKERS) or any(m in text for m in _SUCCESS_MARKERS):
        return "success"
    if any(m in text for m in _TOOL_ERROR_MARKERS):
        return "tool_error"
    return "unknown"


def _normalize_class(tool_name: str, error_class: str) -> str:
    if error_class == "unknown" and tool_name.lower() in _UNKNOWN_AS_SUCCESS_TOOLS:
        return "success"
    return error_class


def _hash(value: str) -> str:
    return hashlib.sha1(value.encode("utf-8")).hexdigest()[:8]


def _shape_of(value: Any) -> Any:
    if isinstance(value, list):
        return [_shape_of(value[0])] if value else ["empty"]
    if isinstance(value, dict):
        return {key: _shape_of(value[key]) for key in sorted(value)}
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


def _argument_shape(raw_arguments: str) -> str:
    try:
        parsed = json.loads(raw_arguments)
    except ValueError:
        return "invalid_json"
    return json.dumps(_shape_of(parsed), sort_keys=True, separators=(",", ":"))


def _argument_values(raw_arguments: str) -> str:
    try:
        parsed = json.loads(raw_arguments)
    except ValueError:
        return f"invalid:{_hash(raw_arguments)}"
    return _hash(json.dumps(parsed, sort_keys=True, separators=(",", ":")))


def _coarse_success_fingerprint(tool_name: str, raw_arguments: str) -> Optional[str]:
    lowered = tool_name.lower()
    if lowered not in ("edit", "write"):
        return None
    try:
        parsed = json.loads(raw_arguments)
    except ValueError:
        return None
    if not isinstance(parsed, dict):
        return None
    path = parsed.get("path") if isinstance(parsed.get("path"), str) else ""
    if not path:
        return None
    # edit 只追踪整文件替换 (old_string 为空)
    if lowered == "edit" and parsed.get("old_string") != "":
        return None
    return f"{tool_name}|path:{_hash(path)}|success"


def _raw_arguments(fn: Dict[str, Any]) -> str:
    arguments = fn.get("arguments")
    if isinstance(arguments, str):
        return arguments
    return json.dumps(arguments if arguments is not None else {}, separators=(",", ":"))


class ToolLoopGuard:
    """
    循环守卫 (每个请求一个实例)

    Args:
        messages: 请求中的 messages[]
        max_repeat: 同一指纹允许出现的次数
    """

    def __init__(self, messages: List[Any], max_repeat: int = 3):
        self.max_repeat = max_repeat
        self._by_call_id: Dict[str, str] = {}
        self._latest: Optional[str] = None
        self._latest_by_tool: Dict[str, str] = {}
        self._counts: Dict[str, int] = {}
        self._coarse_counts: Dict[str, int] = {}
        self._index(messages or [])

    # ---------- history ----------

    def _index(self, messages: List[Any]):
        calls = []
        for message in messages:
            if not isinstance(message, dict):
                continue
            if message.get("role") == "tool":
                error_class = classify_tool_result(message.get("content"))
                self._latest = error_class
                call_id = message.get("tool_call_id")
                if isinstance(call_id, str) and call_id:
                    self._by_call_id[call_id] = error_class
            elif message.get("role") == "assistant" and isinstance(message.get("tool_calls"), list):
                for call in message["tool_calls"]:
                    if not isinstance(call, dict) or not isinstance(call.get("function"), dict):
                        continue
                    call_id, name = call.get("id"), call["function"].get("name")
                    if isinstance(call_id, str) and call_id and isinstance(name, str) and name:
                        calls.append((call_id, name, _raw_arguments(call["function"])))

        for call_id, name, _ in calls:
            if call_id in self._by_call_id:
                self._latest_by_tool[name] = _normalize_class(name, self._by_call_id[call_id])

        for call_id, name, raw_arguments in calls:
            error_class = self._resolve_class(call_id, name)
            if error_class == "success":
                self._increment(self._counts, f"{name}|values:{_argument_values(raw_arguments)}|success")
                coarse = _coarse_success_fingerprint(name, raw_arguments)
                if coarse:
                    self._increment(self._coarse_counts, coarse)
                continue
            self._increment(self._counts, f"{name}|{_argument_shape(raw_arguments)}|{error_class}")
            self._increment(self._coarse_counts, f"{name}|{error_class}")

    def _resolve_class(self, call_id: str, name: str) -> str:
        error_class = (
            self._by_call_id.get(call_id)
            or self._latest_by_tool.get(name)
            or self._latest
            or "unknown"
        )
        return _normalize_class(name, error_class)

    @staticmethod
    def _increment(counts: Dict[str, int], key: str) -> int:
        counts[key] = counts.get(key, 0) + 1
        return counts[key]

    # ---------- evaluation ----------

    def evaluate(self, tool_call: OpenAiToolCall) -> GuardDecision:
        """Count the candidate call and decide whether it should be blocked."""
        name = tool_call.function.name
        raw_arguments = tool_call.function.arguments
        error_class = self._resolve_class(tool_call.id, name)

        if error_class == "success":
            fingerprint = f"{name}|values:{_argument_values(raw_arguments)}|success"
            count = self._increment(self._counts, fingerprint)
            coarse = _coarse_success_fingerprint(name, raw_arguments)
            if coarse:
                coarse_count = self._increment(self._coarse_counts, coarse)
                if coarse_count > self.max_repeat:
                    return GuardDecision(coarse, coarse_count, self.max_repeat, error_class, True)
            return GuardDecision(fingerprint, count, self.max_repeat, error_class, count > self.max_repeat)

        strict = f"{name}|{_argument_shape(raw_arguments)}|{error_class}"
        coarse = f"{name}|{error_class}"
        strict_count = self._increment(self._counts, strict)
        coarse_count = self._increment(self._coarse_counts, coarse)
        strict_triggered = strict_count > self.max_repeat
        coarse_triggered = coarse_count > self.max_repeat
        if coarse_triggered and not strict_triggered:
            return GuardDecision(coarse, coarse_count, self.max_repeat, error_class, True)
        return GuardDecision(strict, strict_count, self.max_repeat, error_class, strict_triggered)


def format_guard_message(tool_call: OpenAiToolCall, decision: GuardDecision) -> str:
    """Assistant text shown when the guard stops a turn."""
    return (
        f"Tool loop guard stopped repeated calls to `{tool_call.function.name}` "
        f"({decision.error_class}, seen {decision.repeat_count} times, limit {decision.max_repeat}). "
        "Adjust the approach or the arguments before trying again."
    )
