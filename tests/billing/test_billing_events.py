"""Tests for billing notification helpers."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from codesolve.platform.billing.events import (
    BillingEvents,
    LoggingNotificationSink,
    NotificationSink,
    emit_credits_earned,
    emit_plan_change,
)

pytestmark = pytest.mark.unit


async def test_emit_plan_change(notification_sink):
    delivered = await emit_plan_change(
        notification_sink,
        tenant_id="tenant-1",
        change_type="upgrade",
        from_plan="starter",
        to_plan="business",
        amount_charged=Decimal("70.00"),
        credits_applied=Decimal("50.00"),
        credits_generated=Decimal("0"),
        plan_change_id="pc-1",
        workflow_id="wf-1",
    )

    assert delivered
    [payload] = notification_sink.of_type(BillingEvents.PLAN_CHANGE)
    assert payload["amount_charged"] == "70.00"
    assert payload["credits_applied"] == "50.00"
    assert payload["workflow_id"] == "wf-1"


async def test_emit_credits_earned(notification_sink):
    expires = datetime(2026, 3, 11, tzinfo=UTC)

    await emit_credits_earned(
        notification_sink,
        tenant_id="tenant-1",
        amount=Decimal("66.67"),
        expires_at=expires,
        reason="Credit from downgrade",
    )

    [payload] = notification_sink.of_type(BillingEvents.CREDITS_EARNED)
    assert payload == {
        "tenant_id": "tenant-1",
        "amount": "66.67",
        "expires_at": "2026-03-11T00:00:00+00:00",
        "reason": "Credit from downgrade",
    }


async def test_failing_sink_is_swallowed(failing_notification_sink):
    delivered = await emit_credits_earned(
        failing_notification_sink,
        tenant_id="tenant-1",
        amount=Decimal("1"),
        expires_at=datetime(2026, 1, 1, tzinfo=UTC),
        reason="Test",
    )

    assert delivered is False


async def test_logging_sink():
    sink = LoggingNotificationSink()

    assert isinstance(sink, NotificationSink)
    await sink.send(BillingEvents.PLAN_CHANGE, {"tenant_id": "tenant-1"})
