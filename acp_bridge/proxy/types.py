"""
Proxy 数据模型
"""

import time
import uuid
from enum import Enum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

__all__ = [
    "ProxyConfig",
    "ServerState",
    "OpenAiFunction",
    "OpenAiToolCall",
    "ToolLoopMeta",
]


class ProxyConfig(BaseModel):
    """代理服务器配置"""

    host: str = "127.0.0.1"
    port: Optional[int] = Field(default=None, ge=0, le=65535, description="None / 0 = 自动分配")
    health_check_path: str = "/health"
    request_timeout: float = Field(default=300.0, gt=0)
    tool_loop_mode: Literal["forward", "proxy-exec", "off"] = "forward"
    max_tool_rounds: int = Field(default=6, ge=1)
    tool_loop_max_repeat: int = Field(default=3, ge=1)


class ServerState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    LISTENING = "listening"


class OpenAiFunction(BaseModel):
    name: str
    arguments: str


class OpenAiToolCall(BaseModel):
    """OpenAI tool_calls[] 元素; arguments 始终是 JSON 对象字符串"""

    id: str
    type: Literal["function"] = "function"
    function: OpenAiFunction

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


class ToolLoopMeta(BaseModel):
    """一轮对话中所有 chunk 共享的 id / created / model"""

    id: str
    created: int
    model: str

    @classmethod
    def new(cls, model: str) -> "ToolLoopMeta":
        return cls(
            id=f"cursor-acp-{uuid.uuid4().hex[:24]}",
            created=int(time.time()),
            model=f"cursor-acp/{model}",
        )
