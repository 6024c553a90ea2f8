"""
MCP 执行器 - `client.mcp.tool.invoke(id, args)`
"""

from .sdk import DelegatingExecutor

__all__ = ["McpExecutor"]


class McpExecutor(DelegatingExecutor):
    unavailable_message = "MCP invoke unavailable"
    log_name = "MCP"

    def _resolve_invoke(self):
        mcp = getattr(self.client, "mcp", None)
        tool = getattr(mcp, "tool", None)
        return getattr(tool, "invoke", None)
