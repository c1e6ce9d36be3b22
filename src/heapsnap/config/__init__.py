"""Startup configuration for heapsnap."""

from .manager import ConfigManager, get_config_manager, initialize_config
from .registry import REGISTRY, ConfigKey

__all__ = ["ConfigKey", "ConfigManager", "REGISTRY", "get_config_manager", "initialize_config"]
