"""
Logging Configuration

structlog events and plain stdlib records share one stdout handler. Partition
workers run on pool threads named ``enrich-<batch_id>_<n>``, and the thread
name is attached to every event so a single partition's lines can be followed
through a batch.
"""

import logging
import sys
from typing import Optional

import structlog
from structlog.processors import CallsiteParameter, CallsiteParameterAdder, JSONRenderer, TimeStamper
from structlog.stdlib import ProcessorFormatter, add_log_level

from sku_enrichment.config.settings import MonitoringSettings

# Log every poll / statement / checkout at INFO
QUIET_LOGGERS = ("aiokafka", "sqlalchemy.engine", "sqlalchemy.pool")


def _renderer(log_format: str):
    if log_format == "json":
        return JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(monitoring: MonitoringSettings, log_level: Optional[str] = None) -> logging.Handler:
    """
    Configure structured logging for the pipeline.

    Args:
        monitoring: Level, format (``json`` or console text)
        log_level: Override of ``monitoring.log_level``, e.g. from the CLI

    Returns:
        The stdout handler installed on the root logger
    """
    level = (log_level or monitoring.log_level).upper()
    numeric_level = getattr(logging, level, logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso"),
        CallsiteParameterAdder([CallsiteParameter.THREAD_NAME]),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=shared_processors + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(
        ProcessorFormatter(
            processor=_renderer(monitoring.log_format),
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level,
        format=monitoring.log_format,
    )
    return handler
