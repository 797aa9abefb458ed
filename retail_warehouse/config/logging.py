"""
Structured Logging for Pipeline Runs

Every event carries the application name and environment. Run-scoped fields
(run_id) are bound through structlog contextvars by the orchestrator, so the
log lines of one ETL run can be filtered out of a shared stream.
"""

import logging
import sys
from typing import Callable, Optional, TextIO

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import add_log_level, ProcessorFormatter

from retail_warehouse.config.settings import get_settings


def _add_pipeline_identity(app_name: str, app_env: str) -> Callable:
    def processor(logger, method_name, event_dict):
        event_dict.setdefault("app", app_name)
        event_dict.setdefault("env", app_env)
        return event_dict

    return processor


def _renderer(log_format: str):
    if log_format == "json":
        return JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def configure_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Route structlog and stdlib logging through a single root handler.

    Args:
        log_level: Override LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)
        log_format: Override LOG_FORMAT ("json" or "console")
        stream: Output stream, stdout by default
    """
    settings = get_settings()
    level = (log_level or settings.monitoring.log_level).upper()
    fmt = log_format or settings.monitoring.log_format
    numeric_level = getattr(logging, level, logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        _add_pipeline_identity(settings.app_name, settings.app_env),
        TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=shared_processors + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(
        ProcessorFormatter(processor=_renderer(fmt), foreign_pre_chain=shared_processors)
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(numeric_level)

    structlog.get_logger(__name__).info("Logging configured", level=level, format=fmt)

