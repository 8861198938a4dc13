"""aiohttp server for community_calendar: app factory, serve loop and entrypoint."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
from typing import Any, Callable, Optional

from aiohttp import web

from ..calendar.rrule_expander import RecurrenceExpander, RRuleExpanderConfig
from ..core.config_loader import Config, load_config
from ..core.config_manager import ConfigManager
from ..core.logging_config import configure_logging
from ..core.timezone_utils import now_utc, set_community_offset
from ..domain.community_store import CommunityStore
from .middleware import correlation_id_middleware, error_middleware
from .routes import register_admin_routes, register_event_routes

logger = logging.getLogger(__name__)

MAX_PORT_ATTEMPTS = 10


def _build_default_config_from_env() -> dict[str, Any]:
    """Build a config mapping from ``.env`` and ``COMMUNITY_*`` environment variables."""
    return ConfigManager().load_full_config()


def build_config(path: Optional[str] = None, overrides: Optional[dict[str, Any]] = None) -> Config:
    """Resolve configuration: file, then environment, then explicit overrides."""
    cfg = load_config(path)
    cfg = cfg.merged(_build_default_config_from_env())
    if overrides:
        cfg = cfg.merged(overrides)
    return cfg


def _create_store(config: Config) -> CommunityStore:
    if config.data_path:
        logger.info("Using data store at %s", config.data_path)
    else:
        logger.warning("No data_path configured; data is kept in memory only")
    return CommunityStore(config.data_path)


async def _make_app(
    config: Config,
    store: CommunityStore,
    expander: Optional[RecurrenceExpander] = None,
    time_provider: Callable[[], Any] = now_utc,
) -> web.Application:
    """Create the aiohttp application with all routes wired to ``store``."""
    set_community_offset(config.community_utc_offset_hours)
    expander = expander or RecurrenceExpander(RRuleExpanderConfig.from_settings(config))

    app = web.Application(middlewares=[correlation_id_middleware, error_middleware])

    register_event_routes(
        app=app,
        store=store,
        expander=expander,
        time_provider=time_provider,
        bearer_token=config.api_bearer_token,
        agenda_days=config.agenda_days,
        upcoming_limit=config.upcoming_limit,
    )
    register_admin_routes(
        app=app,
        store=store,
        time_provider=time_provider,
        bearer_token=config.api_bearer_token,
    )

    async def _shutdown(_app: web.Application) -> None:
        logger.info("Application shutdown requested")

    app.on_shutdown.append(_shutdown)
    return app


async def _serve(
    config: Config,
    store: CommunityStore,
    external_stop_event: asyncio.Event | None = None,
) -> None:
    """Run the server until signalled to stop.

    Args:
        config: Resolved server configuration
        store: Community data store
        external_stop_event: Optional event to signal shutdown. If provided,
            signal handlers are NOT registered (caller owns signal handling).
    """
    stop_event = external_stop_event or asyncio.Event()
    app = await _make_app(config, store)

    runner = web.AppRunner(app)
    await runner.setup()

    host = config.server_bind
    configured_port = config.server_port
    actual_port = configured_port
    for port_offset in range(MAX_PORT_ATTEMPTS):
        actual_port = configured_port + port_offset
        site = web.TCPSite(runner, host=host, port=actual_port)
        try:
            await site.start()
            break
        except OSError as e:
            if "address already in use" not in str(e).lower():
                logger.exception("Failed to start server on %s:%d", host, actual_port)
                await runner.cleanup()
                raise
            logger.debug("Port %d in use, trying next port", actual_port)
    else:
        await runner.cleanup()
        raise RuntimeError(
            f"No available port found in range {configured_port}-{configured_port + MAX_PORT_ATTEMPTS - 1}"
        )

    if actual_port != configured_port:
        logger.warning("Configured port %d was in use, using port %d instead", configured_port, actual_port)
    logger.info("Server started successfully on %s:%d (pid %d)", host, actual_port, os.getpid())

    loop = asyncio.get_running_loop()
    if external_stop_event is None:

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)
    else:
        logger.debug("Using external stop event - skipping signal handler registration")

    await stop_event.wait()
    logger.info("Stop event received, shutting down")
    await runner.cleanup()
    logger.info("Server shutdown complete")


def start_server(config: Config, store: CommunityStore | None = None) -> None:
    """Start the asyncio event loop and HTTP server.

    Blocks the calling thread until SIGINT/SIGTERM is received.
    """
    configure_logging(debug_mode=config.debug_logging)
    logger.info("Logging configuration applied: debug_mode=%s", config.debug_logging)

    store = store if store is not None else _create_store(config)
    try:
        asyncio.run(_serve(config, store))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
