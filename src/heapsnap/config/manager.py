"""Configuration Manager - Startup configuration for the heap sampler.

This module loads sampler settings once at startup:
1. Code defaults from the registry
2. Values from a TOML file (config/default.toml)
3. Environment variable overrides (HEAPSNAP_ prefix, .env supported)

The result is validated and frozen into a SamplerConfig; nothing is
hot-reloaded.
"""

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

import structlog
from dotenv import load_dotenv

from ..models import SamplerConfig, default_output_dir
from .registry import (
    REGISTRY,
    get_config_key,
    get_default_values,
    validate_config_value,
)

logger = structlog.get_logger(__name__)

ENV_PREFIX = "HEAPSNAP_"


class ConfigManager:
    """Loads and validates sampler configuration.

    Attributes:
        config: Loaded configuration (dotted key -> value)
    """

    def __init__(self, config_file: Optional[Path] = None, env_file: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file (default: config/default.toml)
            env_file: Path to .env file (default: .env in working directory)
        """
        self.config: dict[str, Any] = {}

        if config_file is None:
            config_file = Path("config/default.toml")
        if env_file is None:
            env_file = Path(".env")

        self.config_file = config_file
        self.env_file = env_file

        logger.info("config_manager_initialized",
                    config_file=str(config_file),
                    env_file=str(env_file))

    def load(self) -> dict[str, Any]:
        """Load configuration from TOML and environment variables.

        Precedence: code defaults < TOML file < environment variables

        Returns:
            Dictionary of configuration key-value pairs

        Raises:
            ValueError: If configuration validation fails

        Note:
            If config file doesn't exist, defaults are used with a warning.
        """
        logger.info("loading_config", config_file=str(self.config_file))

        if self.env_file.exists():
            load_dotenv(self.env_file)
            logger.info("env_file_loaded", env_file=str(self.env_file))

        # Step 1: Start with defaults
        config = get_default_values()

        # Step 2: Load from TOML file
        if self.config_file.exists():
            with open(self.config_file, "rb") as f:
                toml_data = tomllib.load(f)

            flattened = self._flatten_toml(toml_data)
            for key in REGISTRY:
                if key in flattened:
                    config[key] = flattened[key]

            logger.info("toml_config_loaded", keys_count=len(flattened))
        else:
            logger.warning("config_file_not_found",
                           config_file=str(self.config_file),
                           using_defaults=True)

        # Step 3: Apply environment variable overrides
        # Example: HEAPSNAP_SNAPSHOT_INTERVAL_HOURS overrides snapshot.interval_hours
        for key in REGISTRY:
            env_key = ENV_PREFIX + key.replace(".", "_").upper()
            env_value = os.getenv(env_key)
            if env_value is not None:
                config_key_def = get_config_key(key)
                try:
                    config[key] = self._parse_env_value(env_value, config_key_def.value_type)
                    logger.info("env_override_applied", key=key, env_key=env_key)
                except ValueError as e:
                    logger.error("env_parse_error", key=key, env_key=env_key, error=str(e))
                    raise ValueError(f"Failed to parse env var {env_key}: {e}")

        # Step 4: Validate
        for key, value in config.items():
            is_valid, error_msg = validate_config_value(key, value)
            if not is_valid:
                logger.error("config_validation_failed", key=key, error=error_msg)
                raise ValueError(f"Config validation failed for '{key}': {error_msg}")

        self.config = config
        logger.info("config_loaded", keys_count=len(config))
        return config

    def get(self, key: str) -> Any:
        """Get configuration value.

        Raises:
            KeyError: If key not found in registry
        """
        config_key_def = get_config_key(key)
        return self.config.get(key, config_key_def.default)

    def to_sampler_config(self) -> SamplerConfig:
        """Build the immutable SamplerConfig from loaded values."""
        output_dir = self.get("snapshot.output_dir")
        return SamplerConfig(
            snapshot_interval_hours=float(self.get("snapshot.interval_hours")),
            safe_heap_threshold_mb=float(self.get("snapshot.safe_heap_threshold_mb")),
            output_dir=Path(output_dir).expanduser() if output_dir else default_output_dir(),
            trace_frames=int(self.get("snapshot.trace_frames")),
        )

    def _flatten_toml(self, data: dict) -> dict[str, Any]:
        """Flatten nested TOML structure to dotted keys.

        Example: {"snapshot": {"interval_hours": 6}} -> {"snapshot.interval_hours": 6}
        """
        result = {}

        def _flatten(d: dict, prefix: str = ""):
            for key, value in d.items():
                full_key = f"{prefix}.{key}" if prefix else key
                if isinstance(value, dict):
                    _flatten(value, full_key)
                else:
                    result[full_key] = value

        _flatten(data)
        return result

    def _parse_env_value(self, value: str, target_type: type) -> Any:
        """Parse environment variable string to the key's type (int, float or str).

        Raises:
            ValueError: If parsing fails
        """
        if target_type == int:
            return int(value)
        if target_type == float:
            return float(value)
        return value


# Global instance (initialized by the host at startup)
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get global config manager instance.

    Raises:
        RuntimeError: If config manager not initialized
    """
    if _config_manager is None:
        raise RuntimeError("ConfigManager not initialized. Call initialize_config() first.")
    return _config_manager


def initialize_config(config_file: Optional[Path] = None,
                      env_file: Optional[Path] = None) -> ConfigManager:
    """Initialize global configuration manager.

    Args:
        config_file: Path to TOML config file
        env_file: Path to .env file

    Returns:
        Initialized ConfigManager instance
    """
    global _config_manager
    _config_manager = ConfigManager(config_file, env_file)
    _config_manager.load()
    return _config_manager
