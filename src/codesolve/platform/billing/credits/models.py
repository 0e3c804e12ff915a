"""
Tenant credit ledger models.
"""

from decimal import Decimal
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from codesolve.platform.billing.time_utils import UtcDatetime, utcnow


class CreditTransactionType(str, Enum):
    """Kind of ledger entry."""

    EARNED = "earned"
    SPENT = "spent"
    EXPIRED = "expired"


class CreditReferenceType(str, Enum):
    """What produced a ledger entry."""

    PLAN_CHANGE = "plan_change"
    CANCELLATION = "cancellation"
    REFUND = "refund"
    MANUAL = "manual"
    PROMOTION = "promotion"
    EXPIRY = "expiry"


class CreditTransaction(BaseModel):
    """Append-only ledger entry. Amounts are positive magnitudes."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    tenant_id: str
    type: CreditTransactionType
    amount: Decimal = Field(gt=0, description="Magnitude in major currency units")
    reason: str = Field(description="Human-readable description")
    source_reference: str | None = Field(
        None, description="Plan change id, or the earned entry id for expirations"
    )
    reference_type: CreditReferenceType = CreditReferenceType.PLAN_CHANGE
    balance_before: Decimal = Decimal("0")
    balance_after: Decimal = Decimal("0")
    created_at: UtcDatetime = Field(default_factory=utcnow)
    expires_at: UtcDatetime | None = Field(None, description="Earned entries only")


class CreditSummary(BaseModel):
    """Aggregate view of a tenant's credit."""

    tenant_id: str
    balance: Decimal
    total_earned: Decimal
    total_spent: Decimal
    total_expired: Decimal
    expiring_soon: Decimal = Field(description="Live credit expiring within the warning window")
    next_expiry: UtcDatetime | None = None
