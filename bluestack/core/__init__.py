"""Core module initialization."""

from .config_manager import BluestackConfig, ConfigManager
from .logging_config import log_with_context, setup_logging
from .runtime import build_registry, create_app
from .service import BluestackService, ServiceRegistry

__all__ = [
    "BluestackConfig",
    "ConfigManager",
    "setup_logging",
    "log_with_context",
    "build_registry",
    "create_app",
    "BluestackService",
    "ServiceRegistry",
]
