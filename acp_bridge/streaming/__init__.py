"""
Streaming 模块

- ndjson: cursor-agent NDJSON 行解析 / LineBuffer
- events: AgentEvent 模型与分类
- sse:    OpenAI SSE chunk 构建
"""

__all__ = [
    "ndjson_decode_line",
    "LineBuffer",
    "parse_agent_event",
    "SSEChunkBuilder",
    "DeltaTracker",
]


# 延迟导入避免循环依赖
def __getattr__(name: str):
    if name in ("ndjson_decode_line", "LineBuffer"):
        from . import ndjson
        return getattr(ndjson, name)
    if name == "parse_agent_event":
        from .events import parse_agent_event
        return parse_agent_event
    if name in ("SSEChunkBuilder", "DeltaTracker"):
        from . import sse
        return getattr(sse, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
