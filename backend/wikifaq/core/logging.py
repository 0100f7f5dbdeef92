"""
Structured logging configuration.

Event-style logs (``logger.info("page_completed", slug=...)``) go through
structlog. Service modules that use ``logging.getLogger(__name__)`` share the
same handler, so both end up in one stream with one level.
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import Processor

from wikifaq.core.config import Settings, get_settings


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure structlog and the stdlib root logger from settings."""
    settings = settings or get_settings()
    level = getattr(logging, settings.LOG_LEVEL)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if settings.LOG_FORMAT == "json":
        renderers: list[Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *renderers,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # Chatty client libraries
    for noisy in ("httpx", "httpcore", "sentence_transformers"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))


def get_logger(name: Optional[str] = None) -> Any:
    return structlog.get_logger(name)
