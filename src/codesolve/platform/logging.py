"""
structlog configuration for the platform.

Engine modules log through ``structlog.get_logger(__name__)``; audit records go
to the dedicated ``audit`` logger.
"""

import logging

import structlog

from codesolve.platform.settings import settings


def setup_logging() -> None:
    """Configure stdlib logging and the structlog processor chain from settings."""
    logging.basicConfig(format="%(message)s", level=settings.observability.log_level.value)

    processors: list[structlog.types.Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if settings.observability.bind_context:
        processors.insert(0, structlog.contextvars.merge_contextvars)

    if settings.observability.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def log_audit_event(
    action: str,
    category: str,
    actor: str | None,
    tenant_id: str,
    resource_type: str | None = None,
    resource_id: str | None = None,
    **fields,
) -> None:
    """Write one audit record; ``fields`` carry module/plan ids and access source."""
    structlog.get_logger("audit").info(
        action,
        audit_category=category,
        actor=actor,
        tenant_id=tenant_id,
        resource_type=resource_type,
        resource_id=resource_id,
        **fields,
    )


setup_logging()
