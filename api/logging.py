"""Structured logging configuration.

structlog renders every line, including records the neo4j driver and httpx
emit through the standard library, so the engine and its drivers share one
format. Provider keys and graph credentials never reach the output.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, WrappedLogger

from api.config import Settings, get_settings

SERVICE_NAME = "citation-engine"
HANDLER_NAME = "citation-engine"

# Event keys whose values are replaced before rendering
SENSITIVE_KEYS = frozenset(
    {"api_key", "authorization", "neo4j_password", "password", "x-api-key"}
)

# Driver loggers kept at WARNING unless the app itself logs at DEBUG
DRIVER_LOGGERS = ("httpx", "httpcore", "neo4j")


def filter_sensitive(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = "[Filtered]"
    return event_dict


def _service_context(settings: Settings) -> Any:
    def add_service(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("env", settings.env)
        return event_dict

    return add_service


def _renderers(settings: Settings) -> list[Any]:
    if settings.is_production:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [
        structlog.dev.ConsoleRenderer(
            colors=not settings.is_test,
            exception_formatter=structlog.dev.plain_traceback,
        )
    ]


def setup_logging(settings: Settings | None = None) -> None:
    """Configure structlog and route standard library records through it."""
    settings = settings or get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    # Applied to structlog events and to foreign stdlib records alike
    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _service_context(settings),
        filter_sensitive,
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=not settings.is_test,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *_renderers(settings),
            ],
        )
    )

    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == HANDLER_NAME]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(log_level)

    driver_level = logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
    for name in DRIVER_LOGGERS:
        logging.getLogger(name).setLevel(driver_level)
