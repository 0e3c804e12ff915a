"""Tests for the audit sinks."""

from datetime import UTC, datetime

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from codesolve.platform.audit import (
    ActivitySeverity,
    ActivityType,
    AuditActivity,
    AuditEvent,
    AuditSink,
    DatabaseAuditSink,
    StructlogAuditSink,
)
from codesolve.platform.db import init_db


def _module_event() -> AuditEvent:
    return AuditEvent(
        activity_type=ActivityType.MODULE_ENABLED,
        action="module.enable",
        description="Module instagram enabled",
        tenant_id="tenant-1",
        actor="admin",
        module_id="instagram",
        access_source="addon",
        details={"quantity": 2},
        timestamp=datetime(2025, 3, 11, 12, 0, tzinfo=UTC),
    )


@pytest.fixture
async def session():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    async with async_sessionmaker(engine, expire_on_commit=False)() as session:
        yield session
    await engine.dispose()


@pytest.mark.unit
class TestAuditEvent:
    def test_module_resource(self):
        event = _module_event()

        assert event.resource_type == "module"
        assert event.resource_id == "instagram"

    def test_subscription_resource(self):
        event = AuditEvent(
            activity_type=ActivityType.PLAN_CHANGE_COMPLETED,
            action="plan.upgrade",
            description="Plan changed",
            tenant_id="tenant-1",
            from_plan="starter",
            to_plan="business",
        )

        assert event.resource_type == "subscription"
        assert event.resource_id == "business"
        assert event.severity == ActivitySeverity.LOW


@pytest.mark.unit
class TestStructlogAuditSink:
    async def test_logs_to_audit_logger(self, monkeypatch):
        calls = []
        monkeypatch.setattr(
            "codesolve.platform.audit.service.log_audit_event",
            lambda **kwargs: calls.append(kwargs),
        )

        await StructlogAuditSink().log(_module_event())

        [entry] = calls
        assert entry["action"] == "module.enable"
        assert entry["category"] == "entitlement.module.enabled"
        assert entry["actor"] == "admin"
        assert entry["tenant_id"] == "tenant-1"
        assert entry["resource_type"] == "module"
        assert entry["quantity"] == 2
        assert entry["access_source"] == "addon"
        assert entry["occurred_at"] == "2025-03-11T12:00:00+00:00"

    def test_satisfies_protocol(self):
        assert isinstance(StructlogAuditSink(), AuditSink)


@pytest.mark.integration
class TestDatabaseAuditSink:
    async def test_persists_activity(self, session):
        await DatabaseAuditSink(session).log(_module_event())

        activity = await session.scalar(select(AuditActivity))
        assert activity.tenant_id == "tenant-1"
        assert activity.activity_type == "entitlement.module.enabled"
        assert activity.actor == "admin"
        assert activity.resource_id == "instagram"
        assert activity.details == {
            "quantity": 2,
            "module_id": "instagram",
            "access_source": "addon",
        }
