"""Unit tests for community_calendar.core.logging_config."""

import logging

import pytest

from community_calendar.api.middleware import request_id_var
from community_calendar.core.logging_config import NO_REQUEST_ID, CorrelationIdFilter, configure_logging

pytestmark = [pytest.mark.unit, pytest.mark.fast]


@pytest.fixture
def isolated_root_logger():
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    root.handlers = []
    yield root
    root.handlers = saved_handlers
    root.setLevel(saved_level)


def _record() -> logging.LogRecord:
    return logging.LogRecord("community_calendar.test", logging.INFO, __file__, 1, "hello", None, None)


def test_filter_stamps_request_id() -> None:
    record = _record()
    assert CorrelationIdFilter().filter(record)
    assert record.request_id == NO_REQUEST_ID

    token = request_id_var.set("req-7")
    try:
        record = _record()
        CorrelationIdFilter().filter(record)
        assert record.request_id == "req-7"
    finally:
        request_id_var.reset(token)


def test_configure_logging_installs_handler_once(isolated_root_logger) -> None:
    configure_logging()
    configure_logging()

    assert len(isolated_root_logger.handlers) == 1
    handler = isolated_root_logger.handlers[0]
    assert sum(isinstance(f, CorrelationIdFilter) for f in handler.filters) == 1
    assert logging.getLogger("community_calendar").level == logging.INFO
    assert logging.getLogger("aiohttp.access").level == logging.WARNING


def test_configure_logging_debug_from_environment(isolated_root_logger, monkeypatch) -> None:
    monkeypatch.setenv("COMMUNITY_DEBUG", "true")
    configure_logging()
    assert logging.getLogger("community_calendar.calendar").level == logging.DEBUG

    configure_logging(force_debug=False)
    assert logging.getLogger("community_calendar.calendar").level == logging.INFO


def test_configure_logging_level_override(isolated_root_logger, monkeypatch) -> None:
    monkeypatch.setenv("COMMUNITY_LOG_LEVEL", "warning")
    configure_logging(debug_mode=True)
    assert isolated_root_logger.level == logging.WARNING
