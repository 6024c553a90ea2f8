"""
Prompt 构建

cursor-agent takes one text prompt on stdin, so the OpenAI message history
and tool catalogue are flattened into labelled paragraphs:

    SYSTEM: You have access to the following tools. ...
    USER: ...
    ASSISTANT: <text>
    tool_call(id: call_1, name: read, args: {"path":"a.txt"})
    TOOL_RESULT (call_id: call_1): <output>
"""

import json
from typing import Any, Dict, List, Optional

__all__ = ["build_prompt"]

TOOLS_PREAMBLE = (
    "SYSTEM: You have access to the following tools. When you need to use one, "
    "respond with a tool_call in the standard OpenAI format.\n\nAvailable tools:\n"
)


def _describe_tool(tool: Dict[str, Any]) -> str:
    fn = tool.get("function") if isinstance(tool.get("function"), dict) else tool
    name = fn.get("name") or "unknown"
    description = fn.get("description") or ""
    params = fn.get("parameters")
    param_str = json.dumps(params, ensure_ascii=False, separators=(",", ":")) if params else "{}"
    return f"- {name}: {description}\n  Parameters: {param_str}"


def _text_parts(content: List[Any]) -> List[str]:
    parts = []
    for part in content:
        if isinstance(part, dict) and part.get("type") == "text" and isinstance(part.get("text"), str):
            if part["text"]:
                parts.append(part["text"])
    return parts


def _render_tool_call(call: Any) -> str:
    call = call if isinstance(call, dict) else {}
    fn = call.get("function") if isinstance(call.get("function"), dict) else {}
    arguments = fn.get("arguments") or "{}"
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments, ensure_ascii=False, separators=(",", ":"))
    return f"tool_call(id: {call.get('id') or '?'}, name: {fn.get('name') or '?'}, args: {arguments})"


def build_prompt(messages: List[Dict[str, Any]], tools: Optional[List[Dict[str, Any]]] = None) -> str:
    """
    Flatten chat messages and tool definitions into the agent prompt.

    Args:
        messages: OpenAI messages (role / content / tool_calls / tool_call_id)
        tools: OpenAI tools[]

    Returns:
        段落之间以空行分隔的 prompt
    """
    blocks: List[str] = []

    tool_list = [t for t in (tools or []) if isinstance(t, dict)]
    if tool_list:
        blocks.append(TOOLS_PREAMBLE + "\n".join(_describe_tool(t) for t in tool_list))

    for message in messages or []:
        if not isinstance(message, dict):
            continue
        role = message.get("role") if isinstance(message.get("role"), str) else "user"
        content = message.get("content")

        if role == "tool":
            call_id = message.get("tool_call_id") or "unknown"
            body = content if isinstance(content, str) else json.dumps(content if content is not None else "", ensure_ascii=False)
            blocks.append(f"TOOL_RESULT (call_id: {call_id}): {body}")
            continue

        tool_calls = message.get("tool_calls")
        if role == "assistant" and isinstance(tool_calls, list) and tool_calls:
            text = content if isinstance(content, str) else ""
            rendered = "\n".join(_render_tool_call(tc) for tc in tool_calls)
            blocks.append(f"ASSISTANT: {text + chr(10) if text else ''}{rendered}")
            continue

        if isinstance(content, str):
            blocks.append(f"{role.upper()}: {content}")
        elif isinstance(content, list):
            parts = _text_parts(content)
            if parts:
                blocks.append(f"{role.upper()}: " + "\n".join(parts))

    return "\n\n".join(blocks)
