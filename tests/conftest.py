"""
测试公共工具

FakeAgentSession replays canned NDJSON lines instead of spawning cursor-agent.
"""

import json
import os
import sys
from typing import Any, Dict, List, Optional

import pytest

# 确保项目根目录在 Python 路径中
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


# ==================== NDJSON 行构造 ====================

def assistant_line(text: str, partial: bool = True) -> str:
    event: Dict[str, Any] = {
        "type": "assistant",
        "message": {"role": "assistant", "content": [{"type": "text", "text": text}]},
    }
    if partial:
        event["timestamp_ms"] = 1700000000000
    return json.dumps(event)


def thinking_line(text: str) -> str:
    return json.dumps({"type": "thinking", "subtype": "delta", "text": text})


def tool_call_line(
    key: str,
    args: Any = None,
    call_id: Optional[str] = "call_1",
    subtype: str = "started",
) -> str:
    payload: Dict[str, Any] = {}
    if args is not None:
        payload["args"] = args
    event: Dict[str, Any] = {"type": "tool_call", "subtype": subtype, "tool_call": {key: payload}}
    if call_id is not None:
        event["call_id"] = call_id
    return json.dumps(event)


def result_line(is_error: bool = False, result: str = "") -> str:
    return json.dumps({"type": "result", "subtype": "success", "is_error": is_error, "result": result})


# ==================== Fake agent ====================

class FakeAgentRun:
    def __init__(self, lines: List[str], exit_code: int = 0, stderr: str = ""):
        self._lines = list(lines)
        self.exit_code = exit_code
        self.stderr = stderr
        self.terminated = False

    async def lines(self):
        for line in self._lines:
            if self.terminated:
                return
            yield line

    async def wait(self) -> int:
        return self.exit_code

    async def read_stderr(self) -> str:
        return self.stderr

    def terminate(self) -> None:
        self.terminated = True


class FakeAgentSession:
    """按顺序返回预设的 FakeAgentRun"""

    def __init__(self, *runs: FakeAgentRun):
        self.runs = list(runs)
        self.prompts: List[str] = []
        self.models: List[str] = []

    async def open(self, prompt: str, model: str) -> FakeAgentRun:
        self.prompts.append(prompt)
        self.models.append(model)
        if not self.runs:
            raise AssertionError("No more fake agent runs")
        return self.runs.pop(0)


def parse_sse(body: str) -> List[Any]:
    """SSE 文本 -> [chunk dict..., "[DONE]"]"""
    events = []
    for block in body.split("\n\n"):
        block = block.strip()
        if not block.startswith("data: "):
            continue
        data = block[len("data: "):]
        events.append(data if data == "[DONE]" else json.loads(data))
    return events


@pytest.fixture
def read_tool():
    return {
        "type": "function",
        "function": {
            "name": "read",
            "description": "Read a file",
            "parameters": {"type": "object", "properties": {"path": {"type": "string"}}},
        },
    }
