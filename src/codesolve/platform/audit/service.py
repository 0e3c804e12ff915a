"""
Audit sinks.

The engine only depends on the ``AuditSink`` contract. Two implementations
ship with the platform: one writing structured log entries to the ``audit``
logger and one persisting rows to ``audit_activities``.
"""

from typing import Protocol, runtime_checkable
from uuid import uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ..logging import log_audit_event
from .models import AuditActivity, AuditEvent

logger = structlog.get_logger(__name__)


@runtime_checkable
class AuditSink(Protocol):
    """Append-only audit destination."""

    async def log(self, event: AuditEvent) -> None: ...


def _audit_details(event: AuditEvent) -> dict:
    details = dict(event.details)
    for key in ("module_id", "access_source", "from_plan", "to_plan"):
        value = getattr(event, key)
        if value is not None:
            details[key] = value
    return details


class StructlogAuditSink:
    """Writes audit events as structured logs on the ``audit`` logger."""

    async def log(self, event: AuditEvent) -> None:
        log_audit_event(
            action=event.action,
            category=event.activity_type.value,
            actor=event.actor,
            tenant_id=event.tenant_id,
            resource_type=event.resource_type,
            resource_id=event.resource_id,
            severity=event.severity.value,
            description=event.description,
            occurred_at=event.timestamp.isoformat(),
            **_audit_details(event),
        )


class DatabaseAuditSink:
    """Persists audit events to the ``audit_activities`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def log(self, event: AuditEvent) -> None:
        activity = AuditActivity(
            id=str(uuid4()),
            tenant_id=event.tenant_id,
            activity_type=event.activity_type.value,
            severity=event.severity.value,
            actor=event.actor,
            timestamp=event.timestamp,
            resource_type=event.resource_type,
            resource_id=event.resource_id,
            action=event.action,
            description=event.description,
            details=_audit_details(event),
        )
        self._session.add(activity)
        await self._session.commit()

        logger.info(
            "Audit activity logged",
            activity_type=event.activity_type.value,
            action=event.action,
            tenant_id=event.tenant_id,
            activity_id=activity.id,
        )
