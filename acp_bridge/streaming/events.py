# -*- coding: utf-8 -*-
"""
Agent 事件模型
==============

Typed view over the loosely shaped objects cursor-agent prints. Each parsed
line becomes exactly one AgentEvent variant; the original object is kept in
`raw` so nothing the agent said is lost.

Event `type` 值：
- assistant: 文本 (message.content[*].text)，带 timestamp_ms 的是增量片段
- thinking:  推理文本
- tool_call: 工具调用 (subtype started / completed)
- result:    结束 (is_error=true 时视为错误)
- error:     错误
- 其他:      system / user 回显等，归为 OtherEvent
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field

from .ndjson import ndjson_decode_line

__all__ = [
    "AssistantTextDelta",
    "ThinkingDelta",
    "ToolInvocation",
    "Done",
    "ErrorEvent",
    "OtherEvent",
    "AgentEvent",
    "to_agent_event",
    "parse_agent_event",
    "normalize_tool_name",
    "extract_tool_name_and_args",
]

TOOL_CALL_SUFFIX = "ToolCall"


class _EventBase(BaseModel):
    raw: Dict[str, Any] = Field(default_factory=dict, description="原始 JSON 对象")


class AssistantTextDelta(_EventBase):
    kind: Literal["assistant_text"] = "assistant_text"
    text: str
    partial: bool = Field(default=False, description="增量片段 (带 timestamp_ms)")


class ThinkingDelta(_EventBase):
    kind: Literal["thinking"] = "thinking"
    text: str


class ToolInvocation(_EventBase):
    kind: Literal["tool_call"] = "tool_call"
    tool_name: Optional[str] = None
    call_id: Optional[str] = None
    args: Any = None
    args_present: bool = Field(default=False, description="事件中是否携带 args")
    subtype: Optional[str] = None

    @property
    def is_started(self) -> bool:
        return self.subtype in (None, "started")


class Done(_EventBase):
    kind: Literal["done"] = "done"


class ErrorEvent(_EventBase):
    kind: Literal["error"] = "error"
    raw_message: str = ""


class OtherEvent(_EventBase):
    kind: Literal["other"] = "other"
    type: Optional[str] = None


AgentEvent = Annotated[
    Union[AssistantTextDelta, ThinkingDelta, ToolInvocation, Done, ErrorEvent, OtherEvent],
    Field(discriminator="kind"),
]


# ==================== Tool name helpers ====================

def normalize_tool_name(raw: str) -> str:
    """
    readToolCall -> read, ShellToolCall -> shell

    Only names ending in the literal "ToolCall" are touched; this mirrors
    how cursor-agent keys its tool_call payloads.
    """
    if raw.endswith(TOOL_CALL_SUFFIX):
        base = raw[: -len(TOOL_CALL_SUFFIX)]
        return base[:1].lower() + base[1:]
    return raw


def extract_tool_name_and_args(obj: Dict[str, Any]) -> Tuple[Optional[str], Any, bool]:
    """
    Resolve (name, args, args_present) from a tool_call object.

    A top-level string `name` wins; otherwise the first key of the nested
    `tool_call` map is used. Args always come from that first entry.
    """
    name = obj.get("name") if isinstance(obj.get("name"), str) and obj.get("name") else None
    args: Any = None
    args_present = False

    tool_call = obj.get("tool_call")
    if isinstance(tool_call, dict) and tool_call:
        raw_name, payload = next(iter(tool_call.items()))
        if name is None:
            name = raw_name
        if isinstance(payload, dict) and "args" in payload:
            args = payload["args"]
            args_present = True

    if name:
        name = normalize_tool_name(name)
    return name, args, args_present


# ==================== Classification ====================

def _message_parts(obj: Dict[str, Any]) -> List[Any]:
    message = obj.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    if isinstance(content, list):
        return content
    return []


def _join_parts(parts: List[Any], part_type: str, field: str) -> str:
    texts = []
    for part in parts:
        if isinstance(part, dict) and part.get("type") == part_type and isinstance(part.get(field), str):
            texts.append(part[field])
    return "".join(texts)


def _error_text(obj: Dict[str, Any]) -> str:
    for key in ("message", "error", "result"):
        value = obj.get(key)
        if isinstance(value, str) and value:
            return value
        if isinstance(value, dict) and isinstance(value.get("message"), str):
            return value["message"]
    return ""


def to_agent_event(obj: Dict[str, Any]) -> AgentEvent:
    """Classify an already-decoded JSON object."""
    event_type = obj.get("type")

    if event_type == "assistant":
        parts = _message_parts(obj)
        text = _join_parts(parts, "text", "text")
        if text:
            return AssistantTextDelta(
                raw=obj,
                text=text,
                partial=isinstance(obj.get("timestamp_ms"), (int, float)),
            )
        thinking = _join_parts(parts, "thinking", "thinking")
        if thinking:
            return ThinkingDelta(raw=obj, text=thinking)
        return OtherEvent(raw=obj, type=event_type)

    if event_type == "thinking":
        text = obj.get("text")
        if isinstance(text, str) and text:
            return ThinkingDelta(raw=obj, text=text)
        return OtherEvent(raw=obj, type=event_type)

    if event_type == "tool_call":
        name, args, args_present = extract_tool_name_and_args(obj)
        call_id = obj.get("call_id") or obj.get("tool_call_id")
        subtype = obj.get("subtype")
        return ToolInvocation(
            raw=obj,
            tool_name=name,
            call_id=call_id if isinstance(call_id, str) else None,
            args=args,
            args_present=args_present,
            subtype=subtype if isinstance(subtype, str) else None,
        )

    if event_type == "result":
        if obj.get("is_error") is True:
            return ErrorEvent(raw=obj, raw_message=_error_text(obj))
        return Done(raw=obj)

    if event_type == "error":
        return ErrorEvent(raw=obj, raw_message=_error_text(obj))

    return OtherEvent(raw=obj, type=event_type if isinstance(event_type, str) else None)


def parse_agent_event(line: str) -> Optional[AgentEvent]:
    """
    解析一行 NDJSON 为 AgentEvent。

    Returns:
        AgentEvent，或 None（空行 / 非对象 / 解析失败）
    """
    obj = ndjson_decode_line(line)
    if obj is None:
        return None
    return to_agent_event(obj)
