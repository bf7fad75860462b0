"""Structured logging for the monitoring service and CLI."""

import logging

import structlog
from rich.logging import RichHandler

from ..constants import CONSTANTS

# Third-party loggers that drown out monitoring events at INFO
NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "aiohttp.access", "uvicorn.access")


def _add_service_identity(logger, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", CONSTANTS.APP_NAME)
    event_dict.setdefault("environment", CONSTANTS.ENVIRONMENT)
    return event_dict


def setup_logging(verbose: bool = False) -> None:
    """Configure stdlib logging through Rich and structlog on top of it.

    Request ids bound with ``bind_request_id`` are merged into every event
    logged while the request is being handled.

    Args:
        verbose: Debug level with console rendering; otherwise INFO as JSON
    """
    log_level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=verbose)],
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            _add_service_identity,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer() if verbose else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def bind_request_id(request_id: str) -> None:
    """Attach a request id to all events logged in the current context."""
    structlog.contextvars.bind_contextvars(request_id=request_id)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
