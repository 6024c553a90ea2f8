"""
Configuration for the cursor-acp proxy.

Every setting is read from the environment (a `.env` file is loaded by
web.py before this module is used). Priority: ENV > default.

- 读取失败或取值非法时回退到默认值，并记录 warning
"""

import os
from typing import Optional

from log import log

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 32124
DEFAULT_HEALTH_CHECK_PATH = "/health"
DEFAULT_REQUEST_TIMEOUT = 300.0
DEFAULT_TOOL_LOOP_MODE = "forward"
DEFAULT_MAX_TOOL_ROUNDS = 6
DEFAULT_TOOL_LOOP_MAX_REPEAT = 3
DEFAULT_AGENT_COMMAND = "cursor-agent"

TOOL_LOOP_MODES = ("forward", "proxy-exec", "off")

# "opencode" is the historical name of forward mode
_TOOL_LOOP_MODE_ALIASES = {"opencode": "forward"}

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


# ====================== 解析辅助 ======================

def _get_bool(env_var: str, default: bool) -> bool:
    value = os.getenv(env_var)
    if value is None or not value.strip():
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    log.warning(f"Invalid boolean for {env_var}: {value!r}, using {default}", tag="CONFIG")
    return default


def _get_int(env_var: str, default: int, minimum: Optional[int] = None) -> int:
    value = os.getenv(env_var)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        log.warning(f"Invalid integer for {env_var}: {value!r}, using {default}", tag="CONFIG")
        return default
    if minimum is not None and parsed < minimum:
        log.warning(f"{env_var}={parsed} is below {minimum}, using {default}", tag="CONFIG")
        return default
    return parsed


def _get_float(env_var: str, default: float) -> float:
    value = os.getenv(env_var)
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value.strip())
    except ValueError:
        log.warning(f"Invalid number for {env_var}: {value!r}, using {default}", tag="CONFIG")
        return default
    if parsed <= 0:
        return default
    return parsed


# ====================== 配置 getters ======================

def get_proxy_host() -> str:
    """
    Environment variable: CURSOR_ACP_HOST
    Default: 127.0.0.1
    """
    return os.getenv("CURSOR_ACP_HOST", "").strip() or DEFAULT_HOST


def get_proxy_port() -> int:
    """
    Environment variable: CURSOR_ACP_PORT (0 = pick a free port)
    Default: 32124
    """
    return _get_int("CURSOR_ACP_PORT", DEFAULT_PORT, minimum=0)


def get_health_check_path() -> str:
    path = os.getenv("CURSOR_ACP_HEALTH_PATH", "").strip() or DEFAULT_HEALTH_CHECK_PATH
    if not path.startswith("/"):
        path = "/" + path
    return path


def get_request_timeout() -> float:
    """Seconds a single agent session may run before it is terminated."""
    return _get_float("CURSOR_ACP_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT)


def parse_tool_loop_mode(value: Optional[str]) -> str:
    normalized = (value or DEFAULT_TOOL_LOOP_MODE).strip().lower()
    normalized = _TOOL_LOOP_MODE_ALIASES.get(normalized, normalized)
    if normalized in TOOL_LOOP_MODES:
        return normalized
    log.warning(
        f"Invalid CURSOR_ACP_TOOL_LOOP_MODE {value!r}, using {DEFAULT_TOOL_LOOP_MODE}",
        tag="CONFIG",
    )
    return DEFAULT_TOOL_LOOP_MODE


def get_tool_loop_mode() -> str:
    """
    Environment variable: CURSOR_ACP_TOOL_LOOP_MODE
    Values: forward (alias opencode) | proxy-exec | off
    """
    return parse_tool_loop_mode(os.getenv("CURSOR_ACP_TOOL_LOOP_MODE"))


def get_max_tool_rounds() -> int:
    return _get_int("CURSOR_ACP_MAX_TOOL_ROUNDS", DEFAULT_MAX_TOOL_ROUNDS, minimum=1)


def get_tool_loop_max_repeat() -> int:
    return _get_int("CURSOR_ACP_TOOL_LOOP_MAX_REPEAT", DEFAULT_TOOL_LOOP_MAX_REPEAT, minimum=1)


def get_agent_command() -> str:
    return os.getenv("CURSOR_AGENT_BIN", "").strip() or DEFAULT_AGENT_COMMAND


def get_workspace() -> str:
    return os.getenv("CURSOR_ACP_WORKSPACE", "").strip() or os.getcwd()


def get_force_enabled() -> bool:
    """Pass --force to cursor-agent so it may run its own tools unattended."""
    return _get_bool("CURSOR_ACP_FORCE", True)


def get_reuse_existing_proxy() -> bool:
    return _get_bool("CURSOR_ACP_REUSE_EXISTING_PROXY", True)


def load_proxy_config():
    """Collect every setting into a ProxyConfig."""
    from acp_bridge.proxy.types import ProxyConfig

    return ProxyConfig(
        host=get_proxy_host(),
        port=get_proxy_port(),
        health_check_path=get_health_check_path(),
        request_timeout=get_request_timeout(),
        tool_loop_mode=get_tool_loop_mode(),
        max_tool_rounds=get_max_tool_rounds(),
        tool_loop_max_repeat=get_tool_loop_max_repeat(),
    )
