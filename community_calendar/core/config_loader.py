"""Config file loading for community_calendar.

- Reads YAML (PyYAML); files ending in ``.json`` are parsed as JSON.
- Exposes a typed dataclass ``Config`` and a ``load_config()`` helper that
  accepts an optional path override.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import yaml

from .timezone_utils import DEFAULT_COMMUNITY_OFFSET_HOURS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "config.yaml"


@dataclass
class Config:
    """Typed configuration for community_calendar.

    Fields:
        data_path: JSON store file; None keeps data in memory only
        server_bind: host to bind the HTTP server to
        server_port: port for the HTTP server
        log_level: logging level name
        debug_logging: enable DEBUG for community_calendar loggers
        community_utc_offset_hours: fixed community offset (-12..14)
        agenda_days: default weekly agenda span (1..31)
        upcoming_limit: default size of the upcoming list (1..20)
        max_occurrences_per_rule: expansion cap per recurring event
        expansion_days_window: horizon for next-occurrence lookups
        api_bearer_token: optional bearer token required by mutating routes
    """

    data_path: str | None = None
    server_bind: str = "0.0.0.0"  # nosec: B104 - intentional default; can be overridden via config/env
    server_port: int = 8080
    log_level: str = "INFO"
    debug_logging: bool = False
    community_utc_offset_hours: int = DEFAULT_COMMUNITY_OFFSET_HOURS
    agenda_days: int = 14
    upcoming_limit: int = 4
    max_occurrences_per_rule: int = 250
    expansion_days_window: int = 365
    api_bearer_token: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Config:
        """Create Config from a plain mapping, applying defaults and validation.

        Numeric-like values are coerced to int and bounded values are clamped
        into range, logging a warning whenever a value is changed.
        """
        if data is None:
            data = {}

        def _coerce_int(key: str, default: int) -> int:
            raw = data.get(key, default)
            try:
                return int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default

        def _clamp(key: str, value: int, low: int, high: int) -> int:
            if value < low:
                logger.warning("%s %d below minimum; coercing to %d", key, value, low)
                return low
            if value > high:
                logger.warning("%s %d above maximum; coercing to %d", key, value, high)
                return high
            return value

        offset = _clamp(
            "community_utc_offset_hours",
            _coerce_int("community_utc_offset_hours", DEFAULT_COMMUNITY_OFFSET_HOURS),
            -12,
            14,
        )
        agenda_days = _clamp("agenda_days", _coerce_int("agenda_days", 14), 1, 31)
        upcoming_limit = _clamp("upcoming_limit", _coerce_int("upcoming_limit", 4), 1, 20)
        max_occurrences = _clamp(
            "max_occurrences_per_rule", _coerce_int("max_occurrences_per_rule", 250), 1, 10000
        )
        expansion_days = _clamp("expansion_days_window", _coerce_int("expansion_days_window", 365), 1, 3660)
        server_port = _coerce_int("server_port", 8080)

        server_bind = data.get("server_bind", "0.0.0.0")  # nosec: B104 - default used for local development
        server_bind = str(server_bind) if server_bind is not None else "0.0.0.0"  # nosec: B104

        log_level = data.get("log_level", "INFO")
        log_level = str(log_level).upper() if log_level is not None else "INFO"

        debug_raw = data.get("debug_logging", False)
        if isinstance(debug_raw, str):
            debug_logging = debug_raw.strip().lower() in ("1", "true", "yes", "on")
        else:
            debug_logging = bool(debug_raw)

        data_path = data.get("data_path")
        token = data.get("api_bearer_token")

        return cls(
            data_path=str(data_path) if data_path else None,
            server_bind=server_bind,
            server_port=server_port,
            log_level=log_level,
            debug_logging=debug_logging,
            community_utc_offset_hours=offset,
            agenda_days=agenda_days,
            upcoming_limit=upcoming_limit,
            max_occurrences_per_rule=max_occurrences,
            expansion_days_window=expansion_days,
            api_bearer_token=str(token) if token else None,
        )

    def merged(self, overrides: dict[str, Any]) -> Config:
        """Return a new Config with ``overrides`` applied on top of this one."""
        values = asdict(self)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return Config.from_dict(values)


def _load_yaml_or_json(path: Path) -> Any:
    """Load a mapping from a YAML or JSON file.

    Empty YAML files load as an empty mapping.
    """
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return json.loads(text)
    loaded = yaml.safe_load(text)
    return {} if loaded is None else loaded


def load_config(path: str | None = None) -> Config:
    """Load configuration from a YAML/JSON file and return a Config instance.

    Args:
        path: Optional path to the config file. Defaults to ./config/config.yaml.

    Returns:
        Config dataclass instance with values from file (or defaults).

    Behavior:
    - If file is missing: returns Config() with defaults.
    - If file exists but top-level is not a mapping: raises ValueError.
    """
    p = Path(path) if path else Path.cwd() / DEFAULT_CONFIG_PATH
    logger.debug("Attempting to load config from %s", p)
    if not p.exists():
        logger.info("Config file %s not found; using defaults", p)
        return Config()

    raw = _load_yaml_or_json(p)
    if not isinstance(raw, dict):
        logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
        raise ValueError("Config file must contain a mapping at top level")  # noqa: TRY004
    cfg = Config.from_dict(raw)
    logger.info("Loaded configuration from %s", p)
    logger.debug("Configuration values: %s", cfg)
    return cfg
