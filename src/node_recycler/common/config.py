"""Configuration management for the node recycler.

Loads YAML-based configs into typed dataclasses. The per-node session
capacity lives in its own small key-value document (``mygrid.yaml`` by
default) so it can be shipped alongside the node without the full
system config.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml


DEFAULT_SHUTDOWN_COMMAND = "NodeShutDownServlet"
DEFAULT_CAPACITY_KEY = "UniqueSessionCount"


class ConfigurationError(ValueError):
    """Raised when a required configuration value is missing or malformed."""


@dataclass
class NodeConfig:
    """Node endpoint settings."""
    host: str = "localhost"
    port: int = 5555
    shutdown_command: str = DEFAULT_SHUTDOWN_COMMAND


@dataclass
class DrainConfig:
    """Drain controller settings."""
    poll_interval_sec: float = 10.0
    shutdown_command: str = DEFAULT_SHUTDOWN_COMMAND
    shutdown_timeout_sec: Optional[float] = None  # None = transport default
    capacity_file: str = "mygrid.yaml"
    capacity_key: str = DEFAULT_CAPACITY_KEY


@dataclass
class SystemConfig:
    """Top-level configuration combining all subsystems."""
    node: NodeConfig = field(default_factory=NodeConfig)
    drain: DrainConfig = field(default_factory=DrainConfig)


def load_config(config_path: Optional[str] = None) -> SystemConfig:
    """Load configuration from a YAML file.

    If no path is provided, looks for configs/default.yaml relative to
    the project root, then falls back to defaults.

    Args:
        config_path: Optional path to a YAML config file.

    Returns:
        Populated SystemConfig instance.
    """
    config = SystemConfig()

    if config_path is None:
        project_root = Path(__file__).parent.parent.parent.parent
        default_path = project_root / "configs" / "default.yaml"
        if default_path.exists():
            config_path = str(default_path)

    if config_path and os.path.exists(config_path):
        with open(config_path, "r") as f:
            raw = yaml.safe_load(f) or {}

        if "node" in raw:
            for k, v in raw["node"].items():
                if hasattr(config.node, k):
                    setattr(config.node, k, v)

        if "drain" in raw:
            for k, v in raw["drain"].items():
                if hasattr(config.drain, k):
                    setattr(config.drain, k, v)

    return config


def load_session_capacity(
    path: str,
    key: str = DEFAULT_CAPACITY_KEY,
) -> int:
    """Read the unique session count for a node.

    The file is a flat YAML mapping, e.g. ``UniqueSessionCount: 2``.

    Raises:
        ConfigurationError: If the file or key is missing, or the value
            is not a non-negative integer.
    """
    if not os.path.exists(path):
        raise ConfigurationError(f"Capacity file not found: {path}")

    with open(path, "r") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Could not parse {path}: {e}") from e

    if not isinstance(raw, dict) or key not in raw:
        raise ConfigurationError(f"'{key}' not set in {path}")

    value = raw[key]
    if isinstance(value, bool):
        raise ConfigurationError(f"'{key}' must be an integer, got {value!r}")
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ConfigurationError(
                f"'{key}' must be an integer, got {raw[key]!r}"
            ) from None
    if not isinstance(value, int):
        raise ConfigurationError(f"'{key}' must be an integer, got {value!r}")
    if value < 0:
        raise ConfigurationError(f"'{key}' must not be negative, got {value}")
    return value
