"""
执行器链
"""

from typing import Any, Dict, Sequence

from log import log

from .types import ExecutionResult, ToolExecutor

__all__ = ["execute_with_chain"]


async def execute_with_chain(
    executors: Sequence[ToolExecutor],
    tool_id: str,
    args: Dict[str, Any],
) -> ExecutionResult:
    """
    按顺序找到第一个 can_execute 的执行器并运行

    Returns:
        该执行器的结果；没有执行器认领时返回 fatal 错误
    """
    for executor in executors:
        if executor.can_execute(tool_id):
            log.route(f"{tool_id} -> {type(executor).__name__}", tag="TOOLS")
            return await executor.execute(tool_id, args)

    log.warning(f"No executor available for tool: {tool_id}", tag="TOOLS")
    return ExecutionResult.failure(f"No executor available for tool: {tool_id}", "fatal")
