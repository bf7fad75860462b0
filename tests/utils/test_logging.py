"""Tests for logging setup and request context binding."""

import logging

import structlog

from eventwatch.utils.logging import (
    NOISY_LOGGERS,
    bind_request_id,
    clear_request_context,
    setup_logging,
)


def test_request_id_binding():
    bind_request_id("req-42")
    assert structlog.contextvars.get_contextvars() == {"request_id": "req-42"}

    clear_request_context()
    assert structlog.contextvars.get_contextvars() == {}


def test_setup_logging_quiets_noisy_loggers():
    root_handlers = logging.getLogger().handlers[:]
    root_level = logging.getLogger().level
    structlog_config = structlog.get_config()
    try:
        setup_logging(verbose=True)

        assert logging.getLogger().level == logging.DEBUG
        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING
    finally:
        logging.getLogger().handlers[:] = root_handlers
        logging.getLogger().setLevel(root_level)
        structlog.configure(**structlog_config)
