"""Configuration and logging helpers."""

from .config import RailwayConfig, load_config, get_config, reset_config, configure_logging

__all__ = [
    "RailwayConfig",
    "load_config",
    "get_config",
    "reset_config",
    "configure_logging",
]
