"""Configuration Registry - Defines all configuration keys for the heap sampler.

This module provides the ConfigKey dataclass and REGISTRY dictionary that defines
all configuration options available in heapsnap.

Every key is read once at startup and is immutable afterwards; changing a value
requires restarting the host process.
"""

import math
from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class ConfigKey:
    """Defines a single configuration key with validation.

    Attributes:
        value_type: Expected Python type (str, int, float)
        default: Default value if not specified in config files
        min_value: Minimum value for numeric types (optional)
        max_value: Maximum value for numeric types (optional)
    """
    value_type: type
    default: Any
    min_value: Optional[Any] = None
    max_value: Optional[Any] = None


# Configuration Registry
# =======================
# All configuration keys must be registered here.

REGISTRY: dict[str, ConfigKey] = {
    # ===== SNAPSHOT SCHEDULING =====
    "snapshot.interval_hours": ConfigKey(
        value_type=float,
        default=6.0,
        min_value=0.01,
        max_value=24.0 * 30,
    ),

    # ===== SAFETY GATE =====
    "snapshot.safe_heap_threshold_mb": ConfigKey(
        value_type=float,
        default=250.0,
        min_value=1.0,
        max_value=1024.0 * 64,
    ),

    # ===== OUTPUT =====
    # Empty string means the process root directory (directory of __main__)
    "snapshot.output_dir": ConfigKey(
        value_type=str,
        default="",
    ),

    # ===== TRACING =====
    "snapshot.trace_frames": ConfigKey(
        value_type=int,
        default=25,
        min_value=1,
        max_value=100,
    ),
}


def get_config_key(key: str) -> ConfigKey:
    """Get configuration key definition from registry.

    Args:
        key: Configuration key path (e.g., "snapshot.interval_hours")

    Returns:
        ConfigKey definition

    Raises:
        KeyError: If key not found in registry
    """
    if key not in REGISTRY:
        raise KeyError(f"Configuration key '{key}' not found in registry")
    return REGISTRY[key]


def validate_config_value(key: str, value: Any) -> tuple[bool, Optional[str]]:
    """Validate a configuration value against its registered definition.

    Args:
        key: Configuration key path
        value: Value to validate

    Returns:
        Tuple of (is_valid, error_message)
        error_message is None if valid
    """
    try:
        config_key = get_config_key(key)
    except KeyError as e:
        return False, str(e)

    # bool is an int subclass; never accept it for numeric keys
    if isinstance(value, bool):
        return False, f"Expected type {config_key.value_type.__name__}, got bool"

    # Type validation (ints are accepted where floats are expected)
    expected: tuple[type, ...] = (config_key.value_type,)
    if config_key.value_type is float:
        expected = (float, int)
    if not isinstance(value, expected):
        return False, f"Expected type {config_key.value_type.__name__}, got {type(value).__name__}"

    # Range validation for numeric types; nan and inf are never in range
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return False, f"Value {value} is not a finite number"
        if config_key.min_value is not None and value < config_key.min_value:
            return False, f"Value {value} below minimum {config_key.min_value}"
        if config_key.max_value is not None and value > config_key.max_value:
            return False, f"Value {value} above maximum {config_key.max_value}"

    return True, None


def get_default_values() -> dict[str, Any]:
    """Get default values for all configuration keys.

    Returns:
        Dictionary of key -> default_value
    """
    return {key: config_key.default for key, config_key in REGISTRY.items()}
