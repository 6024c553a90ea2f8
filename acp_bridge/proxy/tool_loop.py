"""
工具调用转换

Turns cursor-agent tool_call events into OpenAI tool calls and renders the
single tool-call turn in both response shapes.

Rules for a forwardable call:
1. the caller declared no tools -> never forward
2. name = top-level `name`, else the first key of `tool_call`, with a
   trailing "ToolCall" stripped and the first letter lower-cased
3. the name must be one the caller declared
4. id = call_id, else tool_call_id, else "call_unknown"
5. arguments are always serialised as a JSON object string
"""

import json
import math
from typing import Any, Dict, Iterable, List, Optional, Set

from ..streaming.events import ToolInvocation
from .types import OpenAiFunction, OpenAiToolCall, ToolLoopMeta

__all__ = [
    "extract_allowed_tool_names",
    "extract_openai_tool_call",
    "to_openai_arguments",
    "create_tool_call_completion_response",
    "create_tool_call_stream_chunks",
]

UNKNOWN_CALL_ID = "call_unknown"


def extract_allowed_tool_names(tools: Optional[Iterable[Any]]) -> Set[str]:
    """从请求的 tools[] 中取出工具名 (function.name 或 name)"""
    names: Set[str] = set()
    for tool in tools or []:
        if not isinstance(tool, dict):
            continue
        fn = tool.get("function") if isinstance(tool.get("function"), dict) else tool
        name = fn.get("name")
        if isinstance(name, str) and name:
            names.add(name)
    return names


def _dumps(value: Any) -> str:
    # allow_nan=False: NaN / Infinity are not JSON
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)


def _finite(value: Any) -> Any:
    """Non-finite floats become their str() so the value stays serialisable."""
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, dict):
        return {key: _finite(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_finite(item) for item in value]
    return value


def to_openai_arguments(args: Any, present: bool = True) -> str:
    """
    Serialise tool arguments as a JSON object string.

    - absent            -> "{}"
    - dict              -> as is
    - JSON string       -> parsed, re-serialised (non-objects wrapped)
    - other string      -> {"value": raw}
    - anything else     -> {"value": args}

    NaN / Infinity never reach the output: a string containing them is
    wrapped raw, other values have them replaced by their str().
    """
    if not present:
        return "{}"

    if isinstance(args, str):
        try:
            parsed = json.loads(args)
            return _dumps(parsed if isinstance(parsed, dict) else {"value": parsed})
        except ValueError:
            return _dumps({"value": args})

    value = args if isinstance(args, dict) else {"value": args}
    try:
        return _dumps(value)
    except ValueError:
        return _dumps(_finite(value))


def extract_openai_tool_call(
    event: ToolInvocation,
    allowed_tool_names: Set[str],
) -> Optional[OpenAiToolCall]:
    """
    Returns:
        OpenAiToolCall，或 None (未声明工具 / 名称不在允许列表)
    """
    if not allowed_tool_names:
        return None

    name = event.tool_name
    if not name or name not in allowed_tool_names:
        return None

    call_id = event.call_id or event.raw.get("tool_call_id") or UNKNOWN_CALL_ID
    return OpenAiToolCall(
        id=call_id,
        function=OpenAiFunction(
            name=name,
            arguments=to_openai_arguments(event.args, event.args_present),
        ),
    )


def create_tool_call_completion_response(meta: ToolLoopMeta, tool_call: OpenAiToolCall) -> Dict[str, Any]:
    return {
        "id": meta.id,
        "object": "chat.completion",
        "created": meta.created,
        "model": meta.model,
        "choices": [
            {
                "index": 0,
                "message": {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [tool_call.to_dict()],
                },
                "finish_reason": "tool_calls",
            }
        ],
        "usage": {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0},
    }


def create_tool_call_stream_chunks(meta: ToolLoopMeta, tool_call: OpenAiToolCall) -> List[Dict[str, Any]]:
    """[tool_calls delta chunk, 结束 chunk (finish_reason=tool_calls)]"""
    base = {
        "id": meta.id,
        "object": "chat.completion.chunk",
        "created": meta.created,
        "model": meta.model,
    }
    tool_delta = dict(base, choices=[{
        "index": 0,
        "delta": {
            "role": "assistant",
            "tool_calls": [dict(index=0, **tool_call.to_dict())],
        },
        "finish_reason": None,
    }])
    finish = dict(base, choices=[{
        "index": 0,
        "delta": {},
        "finish_reason": "tool_calls",
    }])
    return [tool_delta, finish]
