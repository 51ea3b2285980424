"""Structured logging setup using structlog.

Modules keep logging through ``logging.getLogger(__name__)``; every record is
rendered by structlog so lines carry the bound ``rule_id``/``date`` context.
"""

from __future__ import annotations

import logging
import sys
from datetime import date

import structlog

from power_scheduler.config.schema import LoggingConfig

_NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite", "uvicorn.access")


def _isoformat_dates(
    logger: logging.Logger, method_name: str, event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Render date and datetime values (schedule dates, retry times) as ISO strings."""
    for key, value in event_dict.items():
        if isinstance(value, date):
            event_dict[key] = value.isoformat()
    return event_dict


def _build_handlers(config: LoggingConfig, formatter: logging.Formatter) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.file:
        handlers.append(logging.FileHandler(config.file))
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Route stdlib and structlog records through one structlog renderer.

    ``config.format`` is "json" for production or "console" for a terminal;
    ``config.file`` adds a file handler next to stdout.
    """
    config = config or LoggingConfig()
    log_level = getattr(logging, config.level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        _isoformat_dates,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if config.format == "console":
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    for handler in _build_handlers(config, formatter):
        root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
