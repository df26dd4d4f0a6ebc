"""
Connection settings for the authoritative Valkey store, and the errors
raised when it cannot be reached.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class ValkeyConfig:
    """
    Where the authoritative store lives and how hard to try reaching it.

    ``connect_attempts`` bounds the reconnect loop; ``liveness_interval`` is
    how long a successful ping is trusted before the next store call pings
    again.
    """

    host: str = "localhost"
    port: int = 6379
    password: Optional[str] = None
    database: int = 0
    max_connections: int = 10
    socket_timeout: float = 5.0
    connect_attempts: int = 5
    liveness_interval: float = 30.0

    @classmethod
    def from_railway_config(cls, config) -> "ValkeyConfig":
        """Build the store settings from the application ``RailwayConfig``."""
        return cls(
            host=config.valkey_host,
            port=config.valkey_port,
            password=config.valkey_password,
            database=config.valkey_database,
            max_connections=config.valkey_max_connections,
            socket_timeout=config.valkey_socket_timeout,
        )

    def to_pool_kwargs(self) -> Dict[str, Any]:
        kwargs = {
            "host": self.host,
            "port": self.port,
            "db": self.database,
            "max_connections": self.max_connections,
            "socket_timeout": self.socket_timeout,
            "socket_connect_timeout": self.socket_timeout,
            "decode_responses": True,
        }
        if self.password:
            kwargs["password"] = self.password
        return kwargs

    def __str__(self) -> str:
        password_display = "***" if self.password else "None"
        return f"valkey://{self.host}:{self.port}/{self.database} (password={password_display})"


class ValkeyConnectionError(Exception):
    """The authoritative store could not be reached; the caller is offline."""
    pass


class ValkeyTimeoutError(Exception):
    """A store command timed out."""
    pass
