"""
代理服务器

ProxyServer binds its own listening socket and hands it to hypercorn, so the
port is known (and owned) before any request is served.

Lifecycle: stopped -> starting -> listening -> stopped
"""

import asyncio
import socket
from contextlib import suppress
from typing import Optional

from hypercorn.asyncio import serve
from hypercorn.config import Config

from log import log

from ..exceptions import NoAvailablePortError, ProxyStartError
from .app import create_app
from .handler import ChatCompletionsHandler
from .ports import find_available_port, is_address_in_use
from .types import ProxyConfig, ServerState

__all__ = ["ProxyServer"]

_BACKLOG = 128
_STOP_WAIT = 1.0


class ProxyServer:
    """
    One listening proxy; instances are independent of each other.

    Args:
        config: host / port / health_check_path ...
        handler: chat-completions handler; None serves only the health check
    """

    def __init__(self, config: Optional[ProxyConfig] = None, handler: Optional[ChatCompletionsHandler] = None):
        self.config = config or ProxyConfig()
        self.handler = handler
        self.state = ServerState.STOPPED
        self._port: Optional[int] = None
        self._base_url = ""
        self._serve_task: Optional[asyncio.Task] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._start_lock = asyncio.Lock()

    # ==================== 状态 ====================

    def get_port(self) -> Optional[int]:
        return self._port if self.state == ServerState.LISTENING else None

    def get_base_url(self) -> str:
        return self._base_url if self.state == ServerState.LISTENING else ""

    # ==================== 绑定 ====================

    def _bind_socket(self, port: int) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.config.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.config.host, port))
            sock.listen(_BACKLOG)
        except OSError:
            sock.close()
            raise
        return sock

    async def _allocate_and_bind(self) -> socket.socket:
        port = await find_available_port(self.config.host)
        return self._bind_socket(port)

    async def _bind(self) -> socket.socket:
        requested = self.config.port or 0
        if requested <= 0:
            return await self._allocate_and_bind()

        try:
            return self._bind_socket(requested)
        except OSError as e:
            if not is_address_in_use(e):
                log.error(f"Failed to bind {self.config.host}:{requested}: {e}", tag="PROXY")
                raise ProxyStartError(f"Failed to bind {self.config.host}:{requested}: {e}") from e
            original_error = e

        log.fallback(f"Port {requested} is in use, allocating another port", tag="PORT")
        try:
            return await self._allocate_and_bind()
        except (OSError, NoAvailablePortError) as fallback_error:
            raise ProxyStartError(
                f"Port {requested} unavailable ({original_error}); "
                f"fallback allocation failed ({fallback_error})"
            ) from fallback_error

    # ==================== 生命周期 ====================

    async def start(self) -> str:
        """
        启动服务器 (幂等)

        Returns:
            base URL, e.g. http://127.0.0.1:32124/v1

        Raises:
            ProxyStartError / NoAvailablePortError
        """
        async with self._start_lock:
            if self.state == ServerState.LISTENING:
                return self._base_url

            self.state = ServerState.STARTING
            try:
                sock = await self._bind()
            except BaseException:
                self.state = ServerState.STOPPED
                raise

            port = sock.getsockname()[1]

            hypercorn_config = Config()
            hypercorn_config.bind = [f"fd://{sock.detach()}"]
            hypercorn_config.accesslog = None
            hypercorn_config.loglevel = "WARNING"
            hypercorn_config.graceful_timeout = 0
            hypercorn_config.keep_alive_timeout = self.config.request_timeout

            self._shutdown_event = asyncio.Event()
            app = create_app(self.config, self.handler)
            self._serve_task = asyncio.create_task(
                serve(app, hypercorn_config, shutdown_trigger=self._shutdown_event.wait)
            )
            self._serve_task.add_done_callback(self._on_serve_done)

            self._port = port
            self._base_url = f"http://{self.config.host}:{port}/v1"
            self.state = ServerState.LISTENING
            log.success(f"Proxy listening on {self._base_url}", tag="PROXY")
            return self._base_url

    def _on_serve_done(self, task: asyncio.Task):
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            log.error(f"Proxy server stopped unexpectedly: {error}", tag="PROXY")

    async def stop(self) -> None:
        """关闭监听并断开进行中的连接; 未启动时为 no-op"""
        task = self._serve_task
        if task is None:
            self.state = ServerState.STOPPED
            return

        if self._shutdown_event is not None:
            self._shutdown_event.set()

        done, _ = await asyncio.wait({task}, timeout=_STOP_WAIT)
        if not done:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        log.info(f"Proxy on port {self._port} stopped", tag="PROXY")
        self._serve_task = None
        self._shutdown_event = None
        self._port = None
        self._base_url = ""
        self.state = ServerState.STOPPED
