"""
工具注册中心

Name -> (ToolDefinition, handler). Filled once at startup and read-only
afterwards. Registering a name twice replaces the earlier entry.
"""

from typing import Dict, Iterable, List, Optional

from log import log

from .types import ToolDefinition, ToolHandler

__all__ = ["ToolRegistry"]


class ToolRegistry:
    """Registry of tools the proxy can run or advertise."""

    def __init__(self):
        self._tools: Dict[str, ToolDefinition] = {}
        self._handlers: Dict[str, ToolHandler] = {}

    def register(self, definition: ToolDefinition, handler: Optional[ToolHandler] = None) -> None:
        """
        注册工具

        Args:
            definition: 工具定义
            handler: 本地执行函数 (仅 local 工具需要)
        """
        if definition.name in self._tools:
            log.warning(f"Tool {definition.name!r} registered twice, replacing", tag="TOOLS")
        self._tools[definition.name] = definition
        if handler is not None:
            self._handlers[definition.name] = handler
        else:
            self._handlers.pop(definition.name, None)

    def get_tool(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def get_handler(self, name: str) -> Optional[ToolHandler]:
        return self._handlers.get(name)

    def list(self) -> List[ToolDefinition]:
        return list(self._tools.values())

    def names(self) -> List[str]:
        return list(self._tools.keys())

    def to_openai_tools(self, exclude: Iterable[str] = ()) -> List[dict]:
        """OpenAI tools[] for every registered tool not named in exclude"""
        skipped = set(exclude)
        return [tool.to_openai_schema() for name, tool in self._tools.items() if name not in skipped]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
