"""
本地执行器 - 运行 ToolRegistry 中注册的 handler
"""

import asyncio
from typing import Any, Dict

from log import log

from ..registry import ToolRegistry
from ..types import ExecutionResult

__all__ = ["LocalExecutor"]

# 这些错误重试或换参数后可能成功
_RECOVERABLE_ERRORS = (
    FileNotFoundError,
    NotADirectoryError,
    IsADirectoryError,
    FileExistsError,
    PermissionError,
    TimeoutError,
    asyncio.TimeoutError,
    ValueError,
)


class LocalExecutor:
    """Executes tools that have a local handler in the registry."""

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    def can_execute(self, tool_id: str) -> bool:
        return self.registry.get_handler(tool_id) is not None

    async def execute(self, tool_id: str, args: Dict[str, Any]) -> ExecutionResult:
        handler = self.registry.get_handler(tool_id)
        if handler is None:
            return ExecutionResult.failure(f"Local handler unavailable: {tool_id}", "fatal")

        try:
            with log.timer(f"tool:{tool_id}", tag="TOOLS"):
                output = await handler(args or {})
        except _RECOVERABLE_ERRORS as e:
            log.warning(f"Tool {tool_id} failed: {e}", tag="TOOLS")
            return ExecutionResult.failure(str(e) or type(e).__name__, "recoverable")
        except Exception as e:
            log.error(f"Tool {tool_id} crashed: {type(e).__name__}: {e}", tag="TOOLS")
            return ExecutionResult.failure(f"{type(e).__name__}: {e}", "fatal")

        return ExecutionResult.success(output if isinstance(output, str) else str(output))
