"""
Logging Configuration for the Sales Ledger KPI Pipeline

structlog events are rendered through the stdlib ``ProcessorFormatter`` so
library loggers and ledger loggers share one output. Report tables are
printed to stdout; logs always go to stderr and optionally a file.
"""

import logging
import sys
from typing import List, Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import ProcessorFormatter, add_log_level

from ledger_kpi.config.settings import get_settings

RENDERERS = ("json", "text")


def _pre_chain() -> List:
    """Processors applied to structlog and foreign stdlib records alike"""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def build_formatter(log_format: str) -> ProcessorFormatter:
    """Formatter rendering events as JSON lines or colourless console text"""
    if log_format not in RENDERERS:
        raise ValueError(f"Unknown log format '{log_format}', expected one of {RENDERERS}")
    renderer = JSONRenderer() if log_format == "json" else structlog.dev.ConsoleRenderer(colors=False)
    return ProcessorFormatter(processor=renderer, foreign_pre_chain=_pre_chain())


def configure_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure structured logging for the pipeline.

    Arguments override the ``monitoring`` settings section. Calling it again
    replaces the previous root handlers.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        log_format: "json" or "text"
        log_file: Also append logs to this file
    """
    monitoring = get_settings().monitoring
    level_name = (log_level or monitoring.log_level).upper()
    log_format = log_format or monitoring.log_format
    log_file = log_file or monitoring.log_file
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=_pre_chain() + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = build_formatter(log_format)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)

    structlog.get_logger(__name__).debug(
        "Logging configured",
        level=level_name,
        format=log_format,
        file=log_file,
    )
