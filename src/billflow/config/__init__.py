"""Configuration for billflow."""

from billflow.config.logging import configure_logging, get_logger
from billflow.config.settings import Settings, get_settings

__all__ = ["Settings", "configure_logging", "get_logger", "get_settings"]
