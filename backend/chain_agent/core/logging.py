"""
Structured logging via structlog.

Engine log entries carry consistent fields:
  timestamp, level, logger, event, thread_id, message_count,
  tool_call_count, tool_name, batch, error, ...

Stdlib loggers (Celery workers, aiosqlite, httpx) are routed through the
same renderer so a worker's output reads like the API's.

Usage:
    from chain_agent.core.logging import get_logger
    log = get_logger(__name__)
    log.info("turn_complete", thread_id=thread_id, tool_call_count=2)
"""

import logging
import sys

import structlog
from chain_agent.core.config import get_settings

_configured = False


def configure_logging() -> None:
    """
    Configure structlog processors. Idempotent; call at process startup.
    Development: pretty colored output.
    Other environments: JSON output (machine-readable for cloud logging).
    """
    global _configured
    if _configured:
        return

    settings = get_settings()
    is_dev = settings.environment == "development"
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.DEBUG if is_dev else logging.INFO

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    renderer = (
        structlog.dev.ConsoleRenderer()
        if is_dev
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=shared_processors + [
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    # aiosqlite logs every statement at DEBUG
    logging.getLogger("aiosqlite").setLevel(logging.INFO)

    _configured = True


def get_logger(name: str = __name__):
    return structlog.get_logger(name)
