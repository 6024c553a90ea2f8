"""
cursor-acp bridge

Exposes a single-session cursor-agent process as an OpenAI-compatible
chat-completions endpoint.

目录结构:
- proxy/: HTTP server, port allocation, chat-completions pipeline, tool loop
- streaming/: NDJSON line parsing, agent event model, SSE chunk rendering
- tools/: tool registry, executor chain, default local tools
- agent/: cursor-agent subprocess session
- errors.py: agent error classification
"""

__version__ = "0.4.0"

__all__ = ["__version__"]
