"""
OpenAI 响应封装
"""

from typing import Any, Dict, Optional

from .types import ToolLoopMeta

__all__ = [
    "EMPTY_USAGE",
    "create_chat_completion_response",
    "create_error_body",
]

EMPTY_USAGE = {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}


def create_chat_completion_response(
    meta: ToolLoopMeta,
    content: str,
    reasoning: Optional[str] = None,
    finish_reason: str = "stop",
) -> Dict[str, Any]:
    """非流式 chat.completion; usage 固定为 0 (cursor-agent 不报告 token)"""
    message: Dict[str, Any] = {"role": "assistant", "content": content}
    if reasoning:
        message["reasoning_content"] = reasoning
    return {
        "id": meta.id,
        "object": "chat.completion",
        "created": meta.created,
        "model": meta.model,
        "choices": [
            {
                "index": 0,
                "message": message,
                "finish_reason": finish_reason,
            }
        ],
        "usage": dict(EMPTY_USAGE),
    }


def create_error_body(message: str, error_type: str = "api_error") -> Dict[str, Any]:
    return {"error": {"message": message, "type": error_type}}
