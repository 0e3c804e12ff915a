"""
Plan change history and API models.
"""

from decimal import Decimal
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from codesolve.platform.billing.catalog.models import BillingCycle
from codesolve.platform.billing.proration.models import ChangeType
from codesolve.platform.billing.time_utils import UtcDatetime, utcnow


class PlanChangeStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class PlanChangeRecord(BaseModel):
    """Immutable history entry written when a plan change takes effect."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    tenant_id: str
    change_type: ChangeType
    from_plan: str
    to_plan: str
    from_cycle: BillingCycle
    to_cycle: BillingCycle
    prorated_amount: Decimal = Field(description="Amount actually charged (0 for downgrades)")
    credits_applied: Decimal = Decimal("0")
    credits_generated: Decimal = Decimal("0")
    effective_date: UtcDatetime
    payment_reference: str | None = None
    status: PlanChangeStatus = PlanChangeStatus.COMPLETED
    actor: str | None = None
    created_at: UtcDatetime = Field(default_factory=utcnow)


class ReceiptLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    amount: Decimal


class Receipt(BaseModel):
    """What the tenant was charged and credited for a completed change."""

    model_config = ConfigDict(frozen=True)

    plan_change_id: str
    lines: list[ReceiptLine]
    total: Decimal
    currency: str = "BRL"
    payment_reference: str | None = None
