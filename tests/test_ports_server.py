"""
端口分配与代理服务器生命周期测试
"""

import errno
import socket

import httpx
import pytest

from acp_bridge.exceptions import NoAvailablePortError, ProxyStartError
from acp_bridge.proxy import ports
from acp_bridge.proxy.ports import (
    DEFAULT_PORT,
    PORT_RANGE_SIZE,
    _parse_lsof_output,
    _parse_ss_output,
    find_available_port,
    is_address_in_use,
    probe_existing_proxy,
)
from acp_bridge.proxy.server import ProxyServer
from acp_bridge.proxy.types import ProxyConfig, ServerState


def _occupy() -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    return sock


async def _ephemeral_port(host="127.0.0.1", *args, **kwargs):
    return 0


class TestPortParsing:
    def test_ss_output(self):
        output = (
            "LISTEN 0 128 127.0.0.1:32124 0.0.0.0:*\n"
            "LISTEN 0 128 [::1]:32130 [::]:*\n"
            "LISTEN 0 128 0.0.0.0:8080 0.0.0.0:*\n"
            "garbage\n"
        )
        assert _parse_ss_output(output, 32124, 32380) == {32124, 32130}

    def test_lsof_output(self):
        output = (
            "COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME\n"
            "node 123 me 20u IPv4 0x1 0t0 TCP 127.0.0.1:32125 (LISTEN)\n"
            "node 124 me 21u IPv6 0x2 0t0 TCP *:9000 (LISTEN)\n"
        )
        assert _parse_lsof_output(output, 32124, 32380) == {32125}

    def test_address_in_use(self):
        assert is_address_in_use(OSError(errno.EADDRINUSE, "Address already in use"))
        assert not is_address_in_use(OSError(errno.EACCES, "Permission denied"))


class TestFindAvailablePort:
    @pytest.mark.asyncio
    async def test_skips_listed_ports(self, monkeypatch):
        monkeypatch.setattr(ports, "get_used_ports_in_range", lambda lo, hi: {lo, lo + 1})
        monkeypatch.setattr(ports, "is_port_available", lambda port, host: True)
        assert await find_available_port("127.0.0.1", 40000, 8) == 40002

    @pytest.mark.asyncio
    async def test_second_pass_probes_listed_ports(self, monkeypatch):
        """列表说全被占用，但其中一个其实能 bind"""
        monkeypatch.setattr(ports, "get_used_ports_in_range", lambda lo, hi: set(range(lo, hi)))
        monkeypatch.setattr(ports, "is_port_available", lambda port, host: port == 40005)
        assert await find_available_port("127.0.0.1", 40000, 8) == 40005

    @pytest.mark.asyncio
    async def test_exhausted(self, monkeypatch):
        monkeypatch.setattr(ports, "get_used_ports_in_range", lambda lo, hi: set())
        monkeypatch.setattr(ports, "is_port_available", lambda port, host: False)
        with pytest.raises(NoAvailablePortError) as exc_info:
            await find_available_port("127.0.0.1", 40000, 8)
        assert exc_info.value.min_port == 40000
        assert exc_info.value.max_port == 40008


class TestRealAllocation:
    """不打桩的端口分配"""

    @pytest.mark.asyncio
    async def test_port_in_range_and_bindable(self):
        port = await find_available_port()
        assert DEFAULT_PORT <= port < DEFAULT_PORT + PORT_RANGE_SIZE

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.bind(("127.0.0.1", port))
        finally:
            sock.close()

    @pytest.mark.asyncio
    async def test_second_server_on_taken_port_moves_elsewhere(self):
        first = ProxyServer(ProxyConfig(port=0))
        try:
            await first.start()
            taken = first.get_port()
            assert DEFAULT_PORT <= taken < DEFAULT_PORT + PORT_RANGE_SIZE

            second = ProxyServer(ProxyConfig(port=taken))
            try:
                base_url = await second.start()
                assert second.get_port() != taken
                assert f":{taken}/" not in second.get_base_url()
                assert base_url == f"http://127.0.0.1:{second.get_port()}/v1"
                assert DEFAULT_PORT <= second.get_port() < DEFAULT_PORT + PORT_RANGE_SIZE
            finally:
                await second.stop()
        finally:
            await first.stop()


class TestProxyServer:
    @pytest.mark.asyncio
    async def test_lifecycle(self):
        server = ProxyServer(ProxyConfig(port=0))
        assert server.get_port() is None
        assert server.get_base_url() == ""

        try:
            base_url = await server.start()
            port = server.get_port()
            assert server.state == ServerState.LISTENING
            assert base_url == f"http://127.0.0.1:{port}/v1"
            assert await server.start() == base_url

            async with httpx.AsyncClient() as client:
                health = await client.get(f"http://127.0.0.1:{port}/health")
                assert health.json() == {"ok": True}

                missing = await client.get(f"http://127.0.0.1:{port}/v1/models")
                assert missing.status_code == 404
                assert missing.json() == {"error": "Unsupported path: /v1/models"}
        finally:
            await server.stop()

        assert server.state == ServerState.STOPPED
        assert server.get_port() is None
        assert server.get_base_url() == ""

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        server = ProxyServer()
        await server.stop()
        assert server.state == ServerState.STOPPED

    @pytest.mark.asyncio
    async def test_fixed_port_in_use_falls_back(self, monkeypatch):
        monkeypatch.setattr("acp_bridge.proxy.server.find_available_port", _ephemeral_port)
        occupied = _occupy()
        taken = occupied.getsockname()[1]
        server = ProxyServer(ProxyConfig(port=taken))
        try:
            await server.start()
            assert server.get_port() not in (None, taken)
        finally:
            await server.stop()
            occupied.close()

    @pytest.mark.asyncio
    async def test_fallback_failure(self, monkeypatch):
        async def exhausted(*args, **kwargs):
            raise NoAvailablePortError(32124, 32380)

        monkeypatch.setattr("acp_bridge.proxy.server.find_available_port", exhausted)
        occupied = _occupy()
        taken = occupied.getsockname()[1]
        server = ProxyServer(ProxyConfig(port=taken))
        try:
            with pytest.raises(ProxyStartError) as exc_info:
                await server.start()
            assert str(taken) in str(exc_info.value)
            assert "No available port" in str(exc_info.value)
            assert server.state == ServerState.STOPPED
        finally:
            occupied.close()

    @pytest.mark.asyncio
    async def test_independent_instances(self, monkeypatch):
        monkeypatch.setattr("acp_bridge.proxy.server.find_available_port", _ephemeral_port)
        first, second = ProxyServer(), ProxyServer()
        try:
            await first.start()
            await second.start()
            assert first.get_port() != second.get_port()

            await first.stop()
            async with httpx.AsyncClient() as client:
                response = await client.get(f"http://127.0.0.1:{second.get_port()}/health")
                assert response.json() == {"ok": True}
        finally:
            await first.stop()
            await second.stop()


class TestProbeExistingProxy:
    @pytest.mark.asyncio
    async def test_detects_running_proxy(self):
        server = ProxyServer(ProxyConfig(port=0, health_check_path="/healthz"))
        try:
            await server.start()
            assert await probe_existing_proxy("127.0.0.1", server.get_port(), "/healthz") is True
            assert await probe_existing_proxy("127.0.0.1", server.get_port(), "/health") is False
        finally:
            await server.stop()

    @pytest.mark.asyncio
    async def test_nothing_listening(self):
        sock = _occupy()
        port = sock.getsockname()[1]
        sock.close()
        assert await probe_existing_proxy("127.0.0.1", port, timeout=0.5) is False
