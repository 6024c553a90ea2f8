"""Exception types raised by the bridge."""

__all__ = [
    "BridgeError",
    "NoAvailablePortError",
    "ProxyStartError",
    "AgentSessionError",
]


class BridgeError(Exception):
    """Base class for all bridge errors."""


class NoAvailablePortError(BridgeError):
    """No port in the allocation range could be bound."""

    def __init__(self, min_port: int, max_port: int):
        self.min_port = min_port
        self.max_port = max_port
        super().__init__(f"No available port in range {min_port}-{max_port - 1}")


class ProxyStartError(BridgeError):
    """The proxy could not bind its listening socket."""


class AgentSessionError(BridgeError):
    """The agent process could not be started."""
