"""
Agent 会话模块
"""

from .session import AgentRun, AgentSession, CursorAgentRun, CursorAgentSession, build_agent_command

__all__ = [
    "AgentRun",
    "AgentSession",
    "CursorAgentRun",
    "CursorAgentSession",
    "build_agent_command",
]
