"""community_calendar - calendar core of a residential community portal.

Expands recurring community events into civil dates in the community's fixed
UTC offset and serves agenda, month and upcoming views over a small JSON
store, together with the moderation flow and dependency-checked user deletion.
"""

__version__ = "0.1.0"

from typing import Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream colorized output to the console.

    Honors the COMMUNITY_DEBUG environment variable (truthy values: "1",
    "true", "yes", "on"), which forces DEBUG verbosity.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("COMMUNITY_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none is present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message  (only the level is colorized)
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug("Logging initialized at level %s", logging.getLevelName(level))


def run_server(args: Optional[object] = None) -> None:
    """Resolve configuration and start the community_calendar server.

    Configuration precedence is config file < environment < command line.

    Args:
        args: Optional argparse namespace with ``config``, ``port`` and ``data``
    """
    import logging
    import os

    _init_logging(os.environ.get("COMMUNITY_LOG_LEVEL"))
    logger = logging.getLogger(__name__)

    from .api.server import build_config, start_server

    overrides: dict = {}
    config_path = None
    if args is not None:
        config_path = getattr(args, "config", None)
        port = getattr(args, "port", None)
        if port is not None:
            overrides["server_port"] = int(port)
            logger.debug("Applied command line port override: %d", port)
        data_path = getattr(args, "data", None)
        if data_path:
            overrides["data_path"] = data_path

    cfg = build_config(config_path, overrides)
    logging.getLogger().setLevel(getattr(logging, cfg.log_level, logging.INFO))
    logger.debug(
        "Resolved configuration (diagnostic): %s",
        {
            "data_path": cfg.data_path,
            "server_bind": cfg.server_bind,
            "server_port": cfg.server_port,
            "community_utc_offset_hours": cfg.community_utc_offset_hours,
        },
    )

    logger.info("Starting community_calendar server")
    start_server(cfg)
