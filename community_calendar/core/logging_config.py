"""Central logging configuration for community_calendar.

Quiets noisy third-party loggers while keeping the application's own INFO
(or DEBUG) output, and stamps every record with the current request id.
"""

import logging
import os
from typing import Optional

NO_REQUEST_ID = "no-request-id"


class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to all log records for request tracing."""

    def filter(self, record: logging.LogRecord) -> bool:
        # Import here to avoid a circular import with the api package
        from ..api.middleware import get_request_id

        record.request_id = get_request_id()
        return True


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """Configure logging levels for community_calendar.

    Args:
        debug_mode: Whether to enable debug logging for community_calendar modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        COMMUNITY_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        COMMUNITY_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("COMMUNITY_DEBUG", "").lower() in ("1", "true", "yes", "on")
    env_log_level = os.getenv("COMMUNITY_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    correlation_filter = CorrelationIdFilter()

    # keep the colored console handler from __init__ when it is already installed
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] [%(request_id)s] %(levelname)s - %(name)s - %(message)s")
        )
        handler.addFilter(correlation_filter)
        root_logger.addHandler(handler)
    else:
        for existing_handler in root_logger.handlers:
            if not any(isinstance(f, CorrelationIdFilter) for f in existing_handler.filters):
                existing_handler.addFilter(correlation_filter)

    logger_config: dict[str, int] = {
        "aiohttp.access": logging.WARNING,
        "aiohttp.server": logging.WARNING,
        "aiohttp.web": logging.INFO,
        "aiohttp.web_log": logging.WARNING,
        "asyncio": logging.WARNING,
    }

    app_level = logging.DEBUG if final_debug else logging.INFO
    for module in (
        "community_calendar",
        "community_calendar.api",
        "community_calendar.calendar",
        "community_calendar.domain",
    ):
        logger_config[module] = app_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info("Debug logging enabled for community_calendar modules")
    else:
        root_logger.info("Production logging configuration applied")
