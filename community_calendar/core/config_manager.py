"""Environment-based configuration for the community_calendar server."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Args:
        path: Path to .env file

    Returns:
        Dictionary of key-value pairs from the .env file.
        Empty dict if file doesn't exist or cannot be read.

    Note:
        - Skips empty lines and comments (lines starting with #)
        - Strips quotes (both single and double) from values
        - Handles KEY=VALUE format with optional whitespace
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}
    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", path, exc_info=True)
        return result

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, val = line.split("=", 1)
        key = key.strip()
        if key.startswith("export "):
            key = key[len("export "):].strip()
        if key:
            result[key] = val.strip().strip('"').strip("'")

    return result


def _env_int(names: tuple[str, ...]) -> int | None:
    for name in names:
        raw = os.environ.get(name)
        if not raw:
            continue
        try:
            return int(raw)
        except ValueError:
            logger.warning("Invalid %s=%r; ignoring", name, raw)
    return None


class ConfigManager:
    """Manages application configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []
        for key, val in parse_env_file(self.env_file_path).items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))
        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from environment variables.

        Recognizes:
        - COMMUNITY_DATA_PATH -> 'data_path'
        - COMMUNITY_WEB_HOST or COMMUNITY_SERVER_BIND -> 'server_bind'
        - COMMUNITY_WEB_PORT or COMMUNITY_SERVER_PORT -> 'server_port' (int)
        - COMMUNITY_UTC_OFFSET_HOURS -> 'community_utc_offset_hours' (int)
        - COMMUNITY_API_TOKEN -> 'api_bearer_token'
        - COMMUNITY_LOG_LEVEL -> 'log_level'
        - COMMUNITY_DEBUG -> 'debug_logging'

        Returns:
            Configuration dictionary suitable for Config.from_dict / Config.merged
        """
        cfg: dict[str, Any] = {}

        data_path = os.environ.get("COMMUNITY_DATA_PATH")
        if data_path:
            cfg["data_path"] = data_path

        host = os.environ.get("COMMUNITY_WEB_HOST") or os.environ.get("COMMUNITY_SERVER_BIND")
        if host:
            cfg["server_bind"] = host

        port = _env_int(("COMMUNITY_WEB_PORT", "COMMUNITY_SERVER_PORT"))
        if port is not None:
            cfg["server_port"] = port

        offset = _env_int(("COMMUNITY_UTC_OFFSET_HOURS",))
        if offset is not None:
            cfg["community_utc_offset_hours"] = offset

        token = os.environ.get("COMMUNITY_API_TOKEN")
        if token:
            cfg["api_bearer_token"] = token

        log_level = os.environ.get("COMMUNITY_LOG_LEVEL")
        if log_level:
            cfg["log_level"] = log_level.upper()

        debug = os.environ.get("COMMUNITY_DEBUG", "")
        if debug.strip().lower() in ("1", "true", "yes", "on"):
            cfg["debug_logging"] = True

        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment.

        Returns:
            Configuration dictionary
        """
        self.load_env_file()
        return self.build_config_from_env()


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get configuration value supporting both dict and dataclass-like objects."""
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)
