"""
Plan change state machine.

States form a tagged union on ``step``::

    review -> payment -> processing -> success
                 ^           |
                 +-----------+  (payment declined)
    review <-----------------+  (fatal error while applying the change)

The charge attempt count survives every hop, so each charge a workflow makes
carries a distinct idempotency key.

Transition functions are pure: they take a state and return the next state
plus the effects the caller must perform. Only ``processing`` has effects.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from codesolve.platform.billing.exceptions import WorkflowStateError
from codesolve.platform.billing.money_utils import ZERO, round_amount
from codesolve.platform.billing.payments import PaymentMethod
from codesolve.platform.billing.plan_changes.models import Receipt
from codesolve.platform.billing.proration.models import ChangeType, ProrationResult


class WorkflowError(BaseModel):
    """Human-readable failure attached to an interactive state."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class PlanChangeQuote(BaseModel):
    """Proration plus the tenant's credit choice."""

    model_config = ConfigDict(frozen=True)

    proration: ProrationResult
    available_credit: Decimal
    use_credits: bool
    credits_to_apply: Decimal
    final_amount: Decimal

    @property
    def requires_payment(self) -> bool:
        return self.proration.change_type != ChangeType.DOWNGRADE and self.final_amount > ZERO


def build_quote(
    proration: ProrationResult, available_credit: Decimal, use_credits: bool
) -> PlanChangeQuote:
    """Apply credit to a proration: never more than owed, never more than held."""
    currency = proration.currency
    owed = max(ZERO, proration.prorated_amount)
    credits_to_apply = min(available_credit, owed) if use_credits else ZERO
    credits_to_apply = round_amount(credits_to_apply, currency)
    final_amount = round_amount(max(ZERO, proration.prorated_amount - credits_to_apply), currency)
    return PlanChangeQuote(
        proration=proration,
        available_credit=available_credit,
        use_credits=use_credits,
        credits_to_apply=credits_to_apply,
        final_amount=final_amount,
    )


class ReviewState(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: Literal["review"] = "review"
    quote: PlanChangeQuote
    attempts: int = 0
    error: WorkflowError | None = None


class PaymentState(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: Literal["payment"] = "payment"
    quote: PlanChangeQuote
    attempts: int = 0
    error: WorkflowError | None = None


class ProcessingState(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: Literal["processing"] = "processing"
    quote: PlanChangeQuote
    payment_method: PaymentMethod | None = None
    attempt: int = 0


class SuccessState(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: Literal["success"] = "success"
    quote: PlanChangeQuote
    receipt: Receipt


PlanChangeState = Annotated[
    ReviewState | PaymentState | ProcessingState | SuccessState,
    Field(discriminator="step"),
]


# ============================================================================
# Effects
# ============================================================================


@dataclass(frozen=True)
class ChargePayment:
    """Charge ``amount`` with ``payment_method``; ``idempotency_key`` is unique per attempt."""

    amount: Decimal
    payment_method: PaymentMethod
    idempotency_key: str


@dataclass(frozen=True)
class ApplyPlanChange:
    """Record history, move credit and re-resolve modules as one unit."""


Effect = ChargePayment | ApplyPlanChange

AnyState = ReviewState | PaymentState | ProcessingState | SuccessState


@dataclass(frozen=True)
class Transition:
    state: AnyState
    effects: tuple[Effect, ...] = field(default_factory=tuple)


def _expect(state: BaseModel, expected: type, operation: str) -> None:
    if not isinstance(state, expected):
        raise WorkflowStateError(
            f"Cannot {operation.replace('_', ' ')} while the plan change is in "
            f"'{getattr(state, 'step', '?')}'",
            current_state=getattr(state, "step", "?"),
            operation=operation,
        )


# ============================================================================
# Transitions
# ============================================================================


def set_use_credits(state: ReviewState, use_credits: bool) -> Transition:
    _expect(state, ReviewState, "set_use_credits")
    quote = build_quote(state.quote.proration, state.quote.available_credit, use_credits)
    return Transition(ReviewState(quote=quote, attempts=state.attempts))


def proceed_to_payment(state: ReviewState) -> Transition:
    """Confirm the review. Changes that need no payment go straight to processing."""
    _expect(state, ReviewState, "proceed_to_payment")
    if not state.quote.requires_payment:
        return Transition(
            ProcessingState(quote=state.quote, attempt=state.attempts), (ApplyPlanChange(),)
        )
    return Transition(PaymentState(quote=state.quote, attempts=state.attempts))


def submit_payment(
    state: PaymentState, payment_method: PaymentMethod, workflow_id: str
) -> Transition:
    _expect(state, PaymentState, "submit_payment")
    attempt = state.attempts + 1
    charge = ChargePayment(
        amount=state.quote.final_amount,
        payment_method=payment_method,
        idempotency_key=f"{workflow_id}:{attempt}",
    )
    return Transition(
        ProcessingState(quote=state.quote, payment_method=payment_method, attempt=attempt),
        (charge, ApplyPlanChange()),
    )


def payment_failed(
    state: ProcessingState, message: str, code: str = "PAYMENT_DECLINED"
) -> Transition:
    """Declined charge: back to payment with the gateway's message, nothing recorded."""
    _expect(state, ProcessingState, "payment_failed")
    return Transition(
        PaymentState(
            quote=state.quote,
            attempts=state.attempt,
            error=WorkflowError(code=code, message=message),
        )
    )


def processing_aborted(
    state: ProcessingState, code: str, message: str, quote: PlanChangeQuote | None = None
) -> Transition:
    """Fatal error: back to review with the error attached."""
    _expect(state, ProcessingState, "processing_aborted")
    return Transition(
        ReviewState(
            quote=quote or state.quote,
            attempts=state.attempt,
            error=WorkflowError(code=code, message=message),
        )
    )


def processing_succeeded(state: ProcessingState, receipt: Receipt) -> Transition:
    _expect(state, ProcessingState, "processing_succeeded")
    return Transition(SuccessState(quote=state.quote, receipt=receipt))
