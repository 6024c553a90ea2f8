"""
cursor-acp proxy 入口

python web.py

Starts the OpenAI-compatible proxy in front of cursor-agent and waits for
SIGINT / SIGTERM.
"""

# 加载 .env 文件中的环境变量（必须在其他导入之前）
from dotenv import load_dotenv
load_dotenv()

import asyncio
import signal

import config
from log import log

from acp_bridge.agent.session import CursorAgentSession
from acp_bridge.exceptions import BridgeError
from acp_bridge.proxy.handler import ChatCompletionsHandler
from acp_bridge.proxy.ports import probe_existing_proxy
from acp_bridge.proxy.server import ProxyServer
from acp_bridge.tools.defaults import register_default_tools
from acp_bridge.tools.registry import ToolRegistry


def build_server(proxy_config=None) -> ProxyServer:
    """按当前环境配置组装 ProxyServer"""
    proxy_config = proxy_config or config.load_proxy_config()

    registry = ToolRegistry()
    register_default_tools(registry)

    session = CursorAgentSession(
        command=config.get_agent_command(),
        workspace=config.get_workspace(),
        force=config.get_force_enabled(),
        timeout=proxy_config.request_timeout,
    )
    handler = ChatCompletionsHandler(proxy_config, session, registry)
    return ProxyServer(proxy_config, handler)


async def main():
    """异步主启动函数"""
    proxy_config = config.load_proxy_config()

    if config.get_reuse_existing_proxy() and proxy_config.port:
        if await probe_existing_proxy(proxy_config.host, proxy_config.port, proxy_config.health_check_path):
            log.info(
                f"Reusing existing proxy at http://{proxy_config.host}:{proxy_config.port}/v1",
                tag="PROXY",
            )
            return

    server = build_server(proxy_config)
    try:
        base_url = await server.start()
    except BridgeError as e:
        log.critical(f"Proxy failed to start: {e}", tag="PROXY")
        raise SystemExit(1)

    log.info("=" * 60)
    log.info(f"OpenAI endpoint: {base_url}/chat/completions")
    log.info(f"Health check:    {base_url[:-len('/v1')]}{proxy_config.health_check_path}")
    log.info(f"Tool loop mode:  {proxy_config.tool_loop_mode}")
    log.info("=" * 60)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows: KeyboardInterrupt still ends asyncio.run
            pass

    try:
        await stop_event.wait()
    finally:
        await server.stop()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
