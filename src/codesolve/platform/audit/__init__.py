"""
Audit trail for entitlement and plan-change activity.
"""

from .models import ActivitySeverity, ActivityType, AuditActivity, AuditEvent
from .service import AuditSink, DatabaseAuditSink, StructlogAuditSink

__all__ = [
    "ActivitySeverity",
    "ActivityType",
    "AuditActivity",
    "AuditEvent",
    "AuditSink",
    "DatabaseAuditSink",
    "StructlogAuditSink",
]
