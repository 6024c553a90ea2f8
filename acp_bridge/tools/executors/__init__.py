"""
工具执行器

Executors are tried in order by execute_with_chain(); the usual chain is
[SdkExecutor, McpExecutor, LocalExecutor].
"""

from .local import LocalExecutor
from .mcp import McpExecutor
from .sdk import DelegatingExecutor, SdkExecutor

__all__ = [
    "LocalExecutor",
    "SdkExecutor",
    "McpExecutor",
    "DelegatingExecutor",
]
