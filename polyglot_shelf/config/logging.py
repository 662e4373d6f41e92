"""
Logging Configuration for Polyglot Shelf

structlog on top of the stdlib root logger, shared by the API process, the
seeding script and the scheduled warehouse flow. Driver and server loggers
(uvicorn, cassandra, neo4j, pymongo) go through the same handler so every
line comes out in one format.
"""

import logging
import sys
from typing import Iterable, List, Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import add_log_level, ProcessorFormatter
from structlog.typing import Processor

from polyglot_shelf.config.settings import MonitoringSettings, get_settings

SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

# Quiet below WARNING regardless of the configured level
DRIVER_LOGGERS = ("cassandra", "cassandra.cluster", "neo4j", "pymongo")


def shared_processors() -> List[Processor]:
    """Processor chain applied to structlog and foreign (stdlib) records alike."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def build_handler(monitoring: MonitoringSettings, level: int) -> logging.Handler:
    """stdout handler rendering JSON lines, or colored console output for ``text``."""
    if monitoring.log_format == "json":
        renderer: Processor = JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors(),
    ))
    return handler


def _attach(names: Iterable[str], handler: logging.Handler, level: int) -> None:
    for name in names:
        named = logging.getLogger(name)
        named.handlers = [handler]
        named.propagate = False
        named.setLevel(level)


def configure_logging(log_level: Optional[str] = None) -> None:
    """
    Configure structured logging for the process.

    Safe to call more than once; earlier root handlers are replaced.

    Args:
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
    """
    settings = get_settings()
    level_name = (log_level or settings.monitoring.log_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    structlog.configure(
        processors=shared_processors() + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = build_handler(settings.monitoring, level)

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    _attach(SERVER_LOGGERS, handler, level)
    _attach(DRIVER_LOGGERS, handler, max(level, logging.WARNING))

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level_name,
        format=settings.monitoring.log_format,
        environment=settings.app_env,
    )
