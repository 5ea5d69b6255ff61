"""
structlog setup for the marketplace.

Events carry whatever the API middleware bound for the current request
(request_id, user_id, role, service_type). Domain enums are logged as their
stored values, and passenger completion codes never reach the output: the
code is the rider's proof of drop-off and is shown to the rider only.

Records from stdlib loggers (uvicorn, alembic) go through the same chain.
"""

import logging
import sys
from enum import Enum

import structlog

from ridemarket.core.config import get_settings

REDACTED_KEYS = frozenset({"passenger_code", "code"})

QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite")


def enum_values(_, __, event_dict: dict) -> dict:
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
    return event_dict


def redact_passenger_codes(_, __, event_dict: dict) -> dict:
    for key in REDACTED_KEYS & event_dict.keys():
        event_dict[key] = "****"
    return event_dict


def _pre_chain(production: bool) -> list:
    chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        enum_values,
        redact_passenger_codes,
    ]
    if production:
        chain.append(structlog.processors.format_exc_info)
    return chain


def setup_logging() -> None:
    settings = get_settings()
    production = settings.ENVIRONMENT == "production"
    pre_chain = _pre_chain(production)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if production
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_request_context(**values) -> None:
    """Bind the given fields for every later log call in this request; None values are skipped."""
    structlog.contextvars.bind_contextvars(**{k: v for k, v in values.items() if v is not None})


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
