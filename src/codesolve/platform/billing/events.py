"""
Billing notification event types and emission helpers.

Notifications are fire-and-forget: a failing sink is logged and never
propagates into the financial steps that triggered it.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)


# ============================================================================
# Billing Event Types
# ============================================================================


class BillingEvents:
    """Billing notification event type constants."""

    PLAN_CHANGE = "plan_change"
    CREDITS_EARNED = "credits_earned"


@runtime_checkable
class NotificationSink(Protocol):
    """Destination for tenant-facing notifications (email, in-app, webhook)."""

    async def send(self, event_type: str, payload: dict[str, Any]) -> None: ...


class LoggingNotificationSink:
    """Sink that only records notifications in the application log."""

    async def send(self, event_type: str, payload: dict[str, Any]) -> None:
        logger.info("Notification dispatched", event_type=event_type, **payload)


# ============================================================================
# Event Emission Helpers
# ============================================================================


async def _dispatch(sink: NotificationSink, event_type: str, payload: dict[str, Any]) -> bool:
    try:
        await sink.send(event_type, payload)
    except Exception as exc:
        logger.warning(
            "Notification dispatch failed",
            event_type=event_type,
            tenant_id=payload.get("tenant_id"),
            error=str(exc),
        )
        return False
    return True


async def emit_plan_change(
    sink: NotificationSink,
    tenant_id: str,
    change_type: str,
    from_plan: str,
    to_plan: str,
    amount_charged: Decimal,
    credits_applied: Decimal,
    credits_generated: Decimal,
    plan_change_id: str,
    **extra_data: Any,
) -> bool:
    """
    Emit plan change notification.

    Args:
        sink: Notification sink
        tenant_id: Tenant ID
        change_type: upgrade, downgrade or lateral
        from_plan: Previous plan slug
        to_plan: New plan slug
        amount_charged: Amount charged to the payment method
        credits_applied: Tenant credit used for the change
        credits_generated: Tenant credit issued by the change
        plan_change_id: Plan change record ID
        **extra_data: Additional event data

    Returns:
        True if the sink accepted the notification
    """
    payload = {
        "tenant_id": tenant_id,
        "change_type": change_type,
        "from_plan": from_plan,
        "to_plan": to_plan,
        "amount_charged": str(amount_charged),
        "credits_applied": str(credits_applied),
        "credits_generated": str(credits_generated),
        "plan_change_id": plan_change_id,
        **extra_data,
    }
    delivered = await _dispatch(sink, BillingEvents.PLAN_CHANGE, payload)

    if delivered:
        logger.info(
            "Plan change notification emitted",
            tenant_id=tenant_id,
            from_plan=from_plan,
            to_plan=to_plan,
        )
    return delivered


async def emit_credits_earned(
    sink: NotificationSink,
    tenant_id: str,
    amount: Decimal,
    expires_at: datetime,
    reason: str,
    **extra_data: Any,
) -> bool:
    """
    Emit credits earned notification.

    Args:
        sink: Notification sink
        tenant_id: Tenant ID
        amount: Credit amount earned
        expires_at: When the credit expires
        reason: Why the credit was issued
        **extra_data: Additional event data
    """
    payload = {
        "tenant_id": tenant_id,
        "amount": str(amount),
        "expires_at": expires_at.isoformat(),
        "reason": reason,
        **extra_data,
    }
    delivered = await _dispatch(sink, BillingEvents.CREDITS_EARNED, payload)

    if delivered:
        logger.info("Credits earned notification emitted", tenant_id=tenant_id, amount=str(amount))
    return delivered
