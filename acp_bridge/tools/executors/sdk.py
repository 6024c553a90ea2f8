"""
SDK 执行器

Delegates to the host framework's tool client (`client.tool.invoke(id, args)`).
The host decides which ids are routed here through set_tool_ids().
"""

import asyncio
import inspect
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional, Set

from log import log

from ..types import ExecutionResult

__all__ = ["SdkExecutor", "DelegatingExecutor"]


class DelegatingExecutor(ABC):
    """Base for executors that forward calls to a host client."""

    unavailable_message = "invoke unavailable"
    log_name = "delegate"

    def __init__(self, client: Any, timeout: Optional[float] = None):
        self.client = client
        self.timeout = timeout
        self._tool_ids: Set[str] = set()

    def set_tool_ids(self, ids: Iterable[str]) -> None:
        self._tool_ids = set(ids)

    @abstractmethod
    def _resolve_invoke(self):
        """Return the host client's invoke callable, or None when it has none."""

    def can_execute(self, tool_id: str) -> bool:
        return tool_id in self._tool_ids and callable(self._resolve_invoke())

    async def execute(self, tool_id: str, args: Dict[str, Any]) -> ExecutionResult:
        if not self.can_execute(tool_id):
            return ExecutionResult.failure(self.unavailable_message, "fatal")

        invoke = self._resolve_invoke()
        try:
            result = invoke(tool_id, args)
            if inspect.isawaitable(result):
                if self.timeout:
                    result = await asyncio.wait_for(result, timeout=self.timeout)
                else:
                    result = await result
        except asyncio.TimeoutError:
            log.warning(f"{self.log_name} tool {tool_id} timed out after {self.timeout}s", tag="TOOLS")
            return ExecutionResult.failure("tool execution timeout", "recoverable")
        except Exception as e:
            log.warning(f"{self.log_name} tool execution failed: {tool_id}: {e}", tag="TOOLS")
            return ExecutionResult.failure(str(e) or type(e).__name__, "recoverable")

        output = result if isinstance(result, str) else json.dumps(result, separators=(",", ":"), default=str)
        return ExecutionResult.success(output)


class SdkExecutor(DelegatingExecutor):
    unavailable_message = "SDK invoke unavailable"
    log_name = "SDK"

    def _resolve_invoke(self):
        tool = getattr(self.client, "tool", None)
        return getattr(tool, "invoke", None)
