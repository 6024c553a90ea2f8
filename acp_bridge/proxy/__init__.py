"""
Proxy 模块

- server:      ProxyServer (hypercorn + 自有 socket)
- ports:       端口分配 / 已有代理探测
- app:         FastAPI 路由
- handler:     chat.completions 处理流程
- tool_loop:   工具调用转换
- tool_loop_guard: 重复调用守卫
"""

__all__ = [
    "ProxyConfig",
    "ProxyServer",
    "ChatCompletionsHandler",
    "create_app",
    "find_available_port",
    "probe_existing_proxy",
    "build_prompt",
]


# 延迟导入避免循环依赖
def __getattr__(name: str):
    if name == "ProxyConfig":
        from .types import ProxyConfig
        return ProxyConfig
    if name == "ProxyServer":
        from .server import ProxyServer
        return ProxyServer
    if name == "ChatCompletionsHandler":
        from .handler import ChatCompletionsHandler
        return ChatCompletionsHandler
    if name == "create_app":
        from .app import create_app
        return create_app
    if name in ("find_available_port", "probe_existing_proxy"):
        from . import ports
        return getattr(ports, name)
    if name == "build_prompt":
        from .prompt_builder import build_prompt
        return build_prompt
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
