"""
工具执行链

- types:     ToolDefinition / ExecutionResult / ToolExecutor
- registry:  ToolRegistry
- chain:     execute_with_chain
- defaults:  十个默认本地工具
- executors: Local / SDK / MCP 执行器
"""

__all__ = [
    "ToolDefinition",
    "ExecutionResult",
    "ToolExecutor",
    "ToolRegistry",
    "execute_with_chain",
    "register_default_tools",
    "get_default_tool_names",
    "LocalExecutor",
    "SdkExecutor",
    "McpExecutor",
]


# 延迟导入避免循环依赖
def __getattr__(name: str):
    if name in ("ToolDefinition", "ExecutionResult", "ToolExecutor"):
        from . import types
        return getattr(types, name)
    if name == "ToolRegistry":
        from .registry import ToolRegistry
        return ToolRegistry
    if name == "execute_with_chain":
        from .chain import execute_with_chain
        return execute_with_chain
    if name in ("register_default_tools", "get_default_tool_names"):
        from . import defaults
        return getattr(defaults, name)
    if name in ("LocalExecutor", "SdkExecutor", "McpExecutor"):
        from . import executors
        return getattr(executors, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
