"""
Configuration loader — reads the optional host config into SetupConfig.

Every setting has a built-in default matching a stock Fedora + VMware
Workstation install, so the config file is optional. When present it is
YAML, validated against the Pydantic schema.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from vmsecureboot.core.models.system import SetupConfig

logger = logging.getLogger(__name__)

# Default config location and its env override
DEFAULT_CONFIG_PATH = Path("/etc/vmware-secureboot.yml")
CONFIG_ENV_VAR = "VMSB_CONFIG"


class ConfigError(Exception):
    """Raised when the host configuration is invalid or unreadable."""


def find_config_file() -> tuple[Path | None, bool]:
    """Locate the config file.

    Returns:
        (path, explicit). ``explicit`` is True when the path came from
        the environment, in which case a missing file is an error.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path), True
    if DEFAULT_CONFIG_PATH.is_file():
        return DEFAULT_CONFIG_PATH, False
    return None, False


def load_config(path: Path | None = None) -> SetupConfig:
    """Load and validate the host configuration.

    Args:
        path: Explicit path to the YAML file. If None, checks $VMSB_CONFIG,
            then the default location, then falls back to built-in defaults.

    Returns:
        Validated SetupConfig.

    Raises:
        ConfigError: If an explicitly named file is missing or invalid.
    """
    explicit = path is not None
    if path is None:
        path, explicit = find_config_file()

    if path is None:
        logger.debug("No config file — using built-in defaults")
        return SetupConfig()

    if not path.is_file():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        return SetupConfig()

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = SetupConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    config.source_path = str(path.resolve())
    logger.info("Loaded config from %s (%d modules)", path, len(config.module_names))
    return config
