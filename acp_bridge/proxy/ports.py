"""
端口分配

Range: [32124, 32124 + 256)

Pass 1 skips ports the OS reports as listening (`ss` on Linux, `lsof` on
macOS) and probes the rest by bind-then-close. The listing can under-report
inside sandboxes, so pass 2 probes every port in the range.
"""

import asyncio
import errno
import re
import socket
import subprocess
import sys
from typing import Set

import httpx

from log import log

from ..exceptions import NoAvailablePortError

__all__ = [
    "DEFAULT_PORT",
    "PORT_RANGE_SIZE",
    "is_address_in_use",
    "is_port_available",
    "get_used_ports_in_range",
    "find_available_port",
    "probe_existing_proxy",
]

DEFAULT_PORT = 32124
PORT_RANGE_SIZE = 256

_LISTING_TIMEOUT = 5
_LSOF_PORT_PATTERN = re.compile(r":(\d+)\s*(?:\(LISTEN\))?$")


def is_address_in_use(error: BaseException) -> bool:
    if isinstance(error, OSError) and error.errno == errno.EADDRINUSE:
        return True
    message = str(error).lower()
    return "address already in use" in message or "eaddrinuse" in message


def _family_for(host: str) -> int:
    return socket.AF_INET6 if ":" in host else socket.AF_INET


def is_port_available(port: int, host: str = "127.0.0.1") -> bool:
    """尝试 bind 后立即关闭"""
    sock = socket.socket(_family_for(host), socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        return True
    except OSError:
        return False
    finally:
        sock.close()


def _parse_ss_output(output: str, min_port: int, max_port: int) -> Set[int]:
    # State Recv-Q Send-Q Local-Address:Port Peer-Address:Port
    used = set()
    for line in output.splitlines():
        cols = line.split()
        if len(cols) < 4:
            continue
        local = cols[3]
        port_str = local.rsplit(":", 1)[-1]
        if port_str.isdigit() and min_port <= int(port_str) < max_port:
            used.add(int(port_str))
    return used


def _parse_lsof_output(output: str, min_port: int, max_port: int) -> Set[int]:
    used = set()
    for line in output.splitlines():
        match = _LSOF_PORT_PATTERN.search(line.strip())
        if match and min_port <= int(match.group(1)) < max_port:
            used.add(int(match.group(1)))
    return used


def get_used_ports_in_range(min_port: int, max_port: int) -> Set[int]:
    """
    Listening ports in [min_port, max_port) according to the OS.

    Returns an empty set on unsupported platforms or when the listing
    command fails.
    """
    if sys.platform.startswith("linux"):
        command, parser = ["ss", "-tlnH"], _parse_ss_output
    elif sys.platform == "darwin":
        command, parser = ["lsof", "-iTCP", "-sTCP:LISTEN", "-nP"], _parse_lsof_output
    else:
        log.debug(f"Port detection not supported on {sys.platform}, probing only", tag="PORT")
        return set()

    try:
        completed = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=_LISTING_TIMEOUT,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        log.debug(f"Port detection failed: {e}, probing only", tag="PORT")
        return set()

    return parser(completed.stdout, min_port, max_port)


async def find_available_port(
    host: str = "127.0.0.1",
    base_port: int = DEFAULT_PORT,
    range_size: int = PORT_RANGE_SIZE,
) -> int:
    """
    在端口范围内找到可用端口

    Raises:
        NoAvailablePortError: 两轮探测都失败
    """
    min_port, max_port = base_port, base_port + range_size
    used = await asyncio.to_thread(get_used_ports_in_range, min_port, max_port)

    for port in range(min_port, max_port):
        if port in used:
            continue
        if is_port_available(port, host):
            return port

    for port in range(min_port, max_port):
        if is_port_available(port, host):
            log.debug(f"Port {port} was listed as used but binds", tag="PORT")
            return port

    raise NoAvailablePortError(min_port, max_port)


async def probe_existing_proxy(
    host: str,
    port: int,
    health_check_path: str = "/health",
    timeout: float = 1.0,
) -> bool:
    """已有代理在监听且健康检查返回 {"ok": true} 时返回 True"""
    url = f"http://{host}:{port}{health_check_path}"
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.get(url)
    except httpx.HTTPError as e:
        log.debug(f"No existing proxy at {url}: {e}", tag="PORT")
        return False

    if response.status_code != 200:
        return False
    try:
        return response.json().get("ok") is True
    except ValueError:
        return False
