"""
core/logging.py
---------------
Structured logging using structlog.
DEBUG=true  → human-readable console output
DEBUG=false → JSON (for log aggregators like Datadog, CloudWatch)

Request-scoped fields (request_id, tenant_id, subdomain) live in structlog
contextvars. They are cleared at the start of every request so one request's
identifiers never appear on another request's log lines.
"""

import logging
import sys
import uuid

import structlog

from compliance_api.core.config import settings

REQUEST_ID_HEADER = "X-Request-ID"


def configure_logging() -> None:
    log_level = logging.DEBUG if settings.DEBUG else logging.INFO

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    if not settings.DEBUG:
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.DEBUG
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def begin_request_logging(request_id: str | None) -> str:
    """Reset request-bound log fields and bind a request id. Returns the id."""
    structlog.contextvars.clear_contextvars()
    rid = request_id or str(uuid.uuid4())
    structlog.contextvars.bind_contextvars(request_id=rid)
    return rid


def bind_tenant(tenant_id: str, subdomain: str) -> None:
    structlog.contextvars.bind_contextvars(tenant_id=tenant_id, subdomain=subdomain)


def get_logger(name: str = __name__):
    return structlog.get_logger(name)
