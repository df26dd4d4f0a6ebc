"""
Environment configuration loader with validation for the booking core.
"""

import logging
import os
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class RailwayConfig(BaseModel):
    """Configuration model for the booking core with validation."""

    # Valkey (authoritative store)
    valkey_host: str = Field(default="localhost", description="Valkey server host")
    valkey_port: int = Field(default=6379, ge=1, le=65535, description="Valkey server port")
    valkey_password: Optional[str] = Field(default=None, description="Valkey server password")
    valkey_database: int = Field(default=0, ge=0, le=15, description="Valkey database number")
    valkey_max_connections: int = Field(default=10, ge=1, description="Maximum Valkey connections")
    valkey_socket_timeout: float = Field(default=5.0, gt=0, description="Valkey socket timeout in seconds")

    # Local offline store
    local_database_url: str = Field(
        default="sqlite:///railway_offline.db", description="SQLite URL of the offline store"
    )

    # Logging
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Booking rules
    distance_rate: float = Field(default=0.5, ge=0, description="Fare per distance unit")
    booking_reference_prefix: str = Field(default="TR", min_length=1, max_length=4)

    # Seat inventory locking
    inventory_lock_ttl_seconds: int = Field(default=30, ge=1, le=300)
    inventory_lock_timeout_seconds: float = Field(default=5.0, gt=0)

    # Offline sync
    sync_interval_seconds: int = Field(default=300, ge=1, description="Periodic sync interval")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("local_database_url")
    @classmethod
    def validate_local_database_url(cls, v: str) -> str:
        if not v.startswith("sqlite"):
            raise ValueError("The offline store must be a SQLite database")
        return v


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes", "on")


def load_config(env_file: Optional[str] = None) -> RailwayConfig:
    """
    Load configuration from environment variables and .env file.

    Args:
        env_file: Optional path to .env file. If None, looks for .env in current directory.

    Returns:
        RailwayConfig: Validated configuration object

    Raises:
        ValueError: If configuration is invalid
    """
    if env_file is None:
        env_file = ".env"

    if os.path.exists(env_file):
        load_dotenv(env_file)

    config_data: Dict[str, Any] = {
        "valkey_host": os.getenv("VALKEY_HOST", "localhost"),
        "valkey_port": int(os.getenv("VALKEY_PORT", "6379")),
        "valkey_password": os.getenv("VALKEY_PASSWORD") or None,
        "valkey_database": int(os.getenv("VALKEY_DATABASE", "0")),
        "valkey_max_connections": int(os.getenv("VALKEY_MAX_CONNECTIONS", "10")),
        "valkey_socket_timeout": float(os.getenv("VALKEY_SOCKET_TIMEOUT", "5.0")),
        "local_database_url": os.getenv("LOCAL_DATABASE_URL", "sqlite:///railway_offline.db"),
        "debug": _env_bool("RAILWAY_DEBUG", "false"),
        "log_level": os.getenv("RAILWAY_LOG_LEVEL", "INFO"),
        "distance_rate": float(os.getenv("DISTANCE_RATE", "0.5")),
        "booking_reference_prefix": os.getenv("BOOKING_REFERENCE_PREFIX", "TR"),
        "inventory_lock_ttl_seconds": int(os.getenv("INVENTORY_LOCK_TTL_SECONDS", "30")),
        "inventory_lock_timeout_seconds": float(os.getenv("INVENTORY_LOCK_TIMEOUT_SECONDS", "5.0")),
        "sync_interval_seconds": int(os.getenv("SYNC_INTERVAL_SECONDS", "300")),
    }

    try:
        return RailwayConfig(**config_data)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}") from e


def configure_logging(config: RailwayConfig) -> None:
    """Configure root logging from the loaded configuration."""
    level = logging.DEBUG if config.debug else getattr(logging, config.log_level)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logger.debug("Logging configured at %s", logging.getLevelName(level))


_config: Optional[RailwayConfig] = None


def get_config() -> RailwayConfig:
    """
    Get the global configuration instance, loading it if necessary.

    Returns:
        RailwayConfig: The global configuration object
    """
    global _config
    if _config is None:
        _config = load_config()
        logger.info(
            "Configuration loaded (valkey=%s:%s, offline store=%s)",
            _config.valkey_host, _config.valkey_port, _config.local_database_url,
        )
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() reloads it."""
    global _config
    _config = None
