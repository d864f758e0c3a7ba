"""
Configuration loader.

Loads configuration from:
1. Default values (built-in)
2. TOML config file (cryptomind.toml or ~/.config/cryptomind/config.toml)
3. Environment variables (secrets, models, server address)

Priority: env vars > config file > defaults
"""

import logging
import os
import sys
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import ValidationError

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from .schema import CryptomindConfig

logger = logging.getLogger(__name__)

# Config file search paths (in priority order)
CONFIG_PATHS = [
    Path("cryptomind.toml"),                          # Current directory
    Path(".cryptomind.toml"),                         # Hidden in current directory
    Path.home() / ".config" / "cryptomind" / "config.toml",  # User config
    Path("/etc/cryptomind/config.toml"),              # System config
]

# Environment variable prefix
ENV_PREFIX = "CRYPTOMIND_"


class ConfigError(Exception):
    """Configuration error with helpful message."""

    def __init__(self, message: str, source: str | None = None, field: str | None = None):
        self.source = source
        self.field = field
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.source:
            parts.append(f"Source: {self.source}")
        if self.field:
            parts.append(f"Field: {self.field}")
        return " | ".join(parts)


def _load_toml_file(path: Path) -> dict[str, Any]:
    """Load TOML file if it exists."""
    if not path.exists():
        return {}

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
        logger.info(f"Loaded config from: {path}")
        return data
    except (tomllib.TOMLDecodeError, OSError) as e:
        raise ConfigError(f"Failed to parse TOML: {e}", source=str(path)) from e


def _find_config_file() -> Path | None:
    """Find the first existing config file."""
    for path in CONFIG_PATHS:
        if path.exists():
            return path
    return None


def _load_env_api_keys() -> dict[str, str | None]:
    """Load API keys from environment variables.

    ANTHROPIC_API_KEY is honoured as well, matching the SDK's own lookup.
    """
    return {
        "anthropic": os.environ.get(f"{ENV_PREFIX}ANTHROPIC_KEY") or os.environ.get("ANTHROPIC_API_KEY"),
        "cryptocompare": os.environ.get(f"{ENV_PREFIX}CRYPTOCOMPARE_KEY"),
    }


def _load_env_overrides() -> dict[str, Any]:
    """Non-secret overrides: model list, server address, pacing."""
    overrides: dict[str, Any] = {}

    if models := os.environ.get(f"{ENV_PREFIX}MODELS"):
        overrides["reasoning"] = {"models": [m.strip() for m in models.split(",")]}

    server: dict[str, Any] = {}
    if host := os.environ.get(f"{ENV_PREFIX}HOST"):
        server["host"] = host
    if port := os.environ.get(f"{ENV_PREFIX}PORT"):
        server["port"] = port
    if server:
        overrides["server"] = server

    if pace := os.environ.get(f"{ENV_PREFIX}PACE_SCALE"):
        overrides["pipeline"] = {"pace_scale": pace}

    return overrides


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: Path | str | None = None) -> CryptomindConfig:
    """
    Load and validate configuration.

    Args:
        config_path: Explicit path to config file (optional)

    Returns:
        Validated CryptomindConfig

    Raises:
        ConfigError: If configuration is invalid
    """
    config_data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}", source=str(path))
        config_data = _load_toml_file(path)
    else:
        found_path = _find_config_file()
        if found_path:
            config_data = _load_toml_file(found_path)

    # Override API keys from environment
    env_keys = {k: v for k, v in _load_env_api_keys().items() if v is not None}
    if env_keys:
        config_data = _deep_merge(config_data, {"api_keys": env_keys})
        logger.debug(f"Loaded {len(env_keys)} API key(s) from environment")

    config_data = _deep_merge(config_data, _load_env_overrides())

    try:
        config = CryptomindConfig(**config_data)
    except ValidationError as e:
        errors = e.errors()
        if errors:
            first_error = errors[0]
            field = ".".join(str(loc) for loc in first_error.get("loc", []))
            msg = first_error.get("msg", "Validation error")
            raise ConfigError(f"Invalid configuration: {msg}", field=field) from e
        raise ConfigError(f"Invalid configuration: {e}") from e

    return config


# Explicit config file chosen via reload_config(), if any
_config_path: Path | None = None


@lru_cache
def get_config() -> CryptomindConfig:
    """
    Get singleton configuration instance.

    Uses LRU cache to ensure config is loaded only once.
    """
    return load_config(_config_path)


def reload_config(config_path: Path | str | None = None) -> CryptomindConfig:
    """
    Force reload configuration.

    Clears the cache and reloads from file/environment. A given path
    sticks for later get_config() calls; on failure the previous path
    is kept.
    """
    global _config_path
    previous = _config_path
    _config_path = Path(config_path) if config_path else None
    get_config.cache_clear()
    try:
        return get_config()
    except ConfigError:
        _config_path = previous
        raise
