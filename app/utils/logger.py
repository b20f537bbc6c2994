"""
Structured logging for the eBay sync service using structlog.
Batch jobs bind tenant and connection ids through contextvars so every line a
connection's sync emits can be traced back to it.
"""
import logging
import structlog
import sys
from app.config import settings


def configure_logging():
    """
    Configure structured logging for the sync service.
    JSON lines in production, console output in development. Level comes from LOG_LEVEL.
    """
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]

    if settings.app_environment == "production":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )
    structlog.contextvars.bind_contextvars(
        service="ebay-sync",
        ebay_environment=settings.ebay_environment,
    )


def connection_log_context(tenant_id: str, connection_id: str):
    """Context manager binding tenant_id/connection_id onto every log line inside it."""
    return structlog.contextvars.bound_contextvars(tenant_id=tenant_id, connection_id=connection_id)
