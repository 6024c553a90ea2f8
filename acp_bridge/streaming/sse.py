"""
SSE 输出工具

OpenAI chat.completion.chunk 构建，以及把 cursor-agent 的文本事件转成增量。
"""

import json
import time
from typing import Any, Dict, Optional

__all__ = [
    "SSEChunkBuilder",
    "DeltaTracker",
    "format_sse_chunk",
    "format_sse_done",
]


def format_sse_chunk(payload: Dict[str, Any]) -> str:
    """data: <json>\\n\\n"""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def format_sse_done() -> str:
    return "data: [DONE]\n\n"


class SSEChunkBuilder:
    """SSE Chunk 构建器 - 同一轮对话的所有 chunk 共享 id / created / model"""

    def __init__(self, request_id: str, model: str, created: Optional[int] = None):
        self.request_id = request_id
        self.model = model
        self.created = created or int(time.time())

    def chunk(self, delta: Dict[str, Any], finish_reason: Optional[str] = None) -> Dict[str, Any]:
        return {
            "id": self.request_id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": [{
                "index": 0,
                "delta": delta,
                "finish_reason": finish_reason,
            }],
        }

    def build_role_chunk(self) -> str:
        return format_sse_chunk(self.chunk({"role": "assistant"}))

    def build_content_chunk(self, content: str, finish_reason: Optional[str] = None) -> str:
        """构建内容 chunk"""
        return format_sse_chunk(self.chunk({"content": content}, finish_reason))

    def build_reasoning_chunk(self, reasoning: str) -> str:
        """构建推理内容 chunk (reasoning_content)"""
        return format_sse_chunk(self.chunk({"reasoning_content": reasoning}))

    def build_finish_chunk(self, finish_reason: str) -> str:
        """构建结束 chunk"""
        return format_sse_chunk(self.chunk({}, finish_reason))

    @staticmethod
    def build_done_marker() -> str:
        return format_sse_done()


class DeltaTracker:
    """
    cursor-agent 文本事件 -> 增量

    With --stream-partial-output the agent sends partial events (they carry
    timestamp_ms) as increments and then repeats the whole message once more
    without a timestamp. Partial text is emitted verbatim; once a partial
    arrived, later full messages are echoes and are dropped. Without partials
    a full message is emitted, minus any prefix already sent:

        tracker.next_delta("Hel", partial=True)     -> "Hel"
        tracker.next_delta("lo", partial=True)      -> "lo"
        tracker.next_delta("Hello", partial=False)  -> ""
    """

    def __init__(self):
        self._text = ""
        self._saw_partial = False

    @property
    def text(self) -> str:
        return self._text

    def next_delta(self, value: str, partial: bool = True) -> str:
        if not value:
            return ""
        if partial:
            self._saw_partial = True
            self._text += value
            return value
        if self._saw_partial:
            return ""
        if value.startswith(self._text):
            delta = value[len(self._text):]
            self._text = value
            return delta
        self._text += value
        return value
