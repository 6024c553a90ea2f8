"""
工具执行相关类型
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, runtime_checkable

__all__ = [
    "TOOL_SOURCES",
    "ToolDefinition",
    "ToolHandler",
    "ExecutionResult",
    "ToolExecutor",
]

TOOL_SOURCES = ("sdk", "cli", "local", "mcp")

ToolHandler = Callable[[Dict[str, Any]], Awaitable[str]]


@dataclass(frozen=True)
class ToolDefinition:
    """一个可调用工具的描述 (名称 + JSON schema)"""

    id: str
    name: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    source: str = "local"

    def __post_init__(self):
        if self.source not in TOOL_SOURCES:
            raise ValueError(f"Unknown tool source: {self.source}")

    def to_openai_schema(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass(frozen=True)
class ExecutionResult:
    """
    工具执行结果

    Use ExecutionResult.success() / ExecutionResult.failure(); exactly one of
    output / error is set.
    """

    status: str
    output: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def success(cls, output: str) -> "ExecutionResult":
        return cls(status="success", output=output)

    @classmethod
    def failure(cls, error: str, error_type: str = "recoverable") -> "ExecutionResult":
        if error_type not in ("recoverable", "fatal"):
            raise ValueError(f"Unknown error type: {error_type}")
        return cls(status="error", error=error, error_type=error_type)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def as_text(self) -> str:
        """Text fed back to the agent as the tool result."""
        if self.ok:
            return self.output or ""
        return f"Error: {self.error}"


@runtime_checkable
class ToolExecutor(Protocol):
    """
    工具执行器协议

    can_execute() must be cheap and side-effect free; execute() reports every
    failure through its return value.
    """

    def can_execute(self, tool_id: str) -> bool:
        ...

    async def execute(self, tool_id: str, args: Dict[str, Any]) -> ExecutionResult:
        ...
