"""
Plan change workflow.

One ``PlanChangeWorkflow`` instance drives one plan-change request from
review to success. Instances are never reused: ``finish`` and ``discard``
close them.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import uuid4

import structlog
from pydantic import BaseModel

from codesolve.platform.audit.models import ActivitySeverity, ActivityType, AuditEvent
from codesolve.platform.audit.service import AuditSink
from codesolve.platform.billing.catalog.service import ModuleCatalog, PlanCatalog
from codesolve.platform.billing.config import BillingConfig
from codesolve.platform.billing.credits.ledger import CreditLedger
from codesolve.platform.billing.credits.models import CreditReferenceType, CreditTransaction
from codesolve.platform.billing.entitlements.resolver import EntitlementResolver
from codesolve.platform.billing.events import NotificationSink, emit_credits_earned, emit_plan_change
from codesolve.platform.billing.exceptions import (
    BillingError,
    PaymentDeclinedError,
    PlanChangeError,
    PlanChangeNotAllowedError,
    TenantNotProvisionedError,
    WorkflowStateError,
)
from codesolve.platform.billing.locks import TenantChangeRegistry
from codesolve.platform.billing.money_utils import ZERO, to_minor_units
from codesolve.platform.billing.payments import ChargeResult, PaymentGateway, PaymentMethod
from codesolve.platform.billing.plan_changes import state_machine as sm
from codesolve.platform.billing.plan_changes.models import (
    PlanChangeRecord,
    PlanChangeStatus,
    Receipt,
    ReceiptLine,
)
from codesolve.platform.billing.proration.calculator import (
    ProrationCalculator,
    check_change_eligibility,
)
from codesolve.platform.billing.proration.models import (
    BreakdownItemType,
    ChangeType,
    SubscriptionPeriod,
)
from codesolve.platform.billing.repository import BillingRepository
from codesolve.platform.billing.time_utils import utcnow

logger = structlog.get_logger(__name__)


class WorkflowView(BaseModel):
    """Snapshot of a workflow for UI binding."""

    workflow_id: str
    tenant_id: str
    state: str
    quote: sm.PlanChangeQuote
    receipt: Receipt | None = None
    error: sm.WorkflowError | None = None
    closed: bool = False


class PlanChangeWorkflow:
    """
    Drives a single plan change.

    The tenant is claimed when the review is confirmed and released once the
    change succeeds, is discarded or aborts fatally, so at most one change
    per tenant is ever between payment and success. Financial and entitlement
    effects are applied under the tenant lock inside one repository
    transaction.
    """

    def __init__(
        self,
        *,
        tenant_id: str,
        to_plan: str,
        period: SubscriptionPeriod,
        repository: BillingRepository,
        catalog: ModuleCatalog,
        plans: PlanCatalog,
        ledger: CreditLedger,
        gateway: PaymentGateway,
        notification_sink: NotificationSink,
        audit_sink: AuditSink,
        registry: TenantChangeRegistry,
        config: BillingConfig,
        actor: str | None = None,
        clock: Callable[[], datetime] = utcnow,
        workflow_id: str | None = None,
    ) -> None:
        self.workflow_id = workflow_id or str(uuid4())
        self.tenant_id = tenant_id
        self.to_plan = to_plan
        self.period = period
        self.actor = actor

        self.repository = repository
        self.catalog = catalog
        self.plans = plans
        self.ledger = ledger
        self.gateway = gateway
        self.notification_sink = notification_sink
        self.audit_sink = audit_sink
        self.registry = registry
        self.config = config
        self._clock = clock
        self._calculator = ProrationCalculator(
            plans, clock=clock, locale=config.currency.default_locale
        )

        self._state: sm.AnyState | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> sm.AnyState:
        if self._state is None:
            raise WorkflowStateError(
                "Plan change has not been started", current_state="new", operation="state"
            )
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def view(self) -> WorkflowView:
        state = self.state
        return WorkflowView(
            workflow_id=self.workflow_id,
            tenant_id=self.tenant_id,
            state=state.step,
            quote=state.quote,
            receipt=state.receipt if isinstance(state, sm.SuccessState) else None,
            error=getattr(state, "error", None),
            closed=self._closed,
        )

    def _ensure_open(self, operation: str) -> None:
        if self._closed:
            raise WorkflowStateError(
                "Plan change workflow is closed", current_state="closed", operation=operation
            )

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    async def start(self, use_credits: bool = True) -> WorkflowView:
        """
        Compute the proration and the tenant's available credit.

        Raises:
            TenantNotProvisionedError: Tenant has no entitlements
            PlanNotFoundError: Unknown target plan
            PlanChangeNotAllowedError: Change refused by eligibility rules
            InvalidProrationInputError: Malformed period
        """
        self._ensure_open("start")
        if self._state is not None:
            raise WorkflowStateError(
                "Plan change already started", current_state=self._state.step, operation="start"
            )

        entitlements = await self.repository.get_entitlements(self.tenant_id)
        if entitlements is None:
            raise TenantNotProvisionedError(
                f"Tenant {self.tenant_id} has no entitlements", tenant_id=self.tenant_id
            )
        from_plan = self.plans.get(entitlements.plan_slug)
        to_plan = self.plans.get(self.to_plan)

        if not self.config.plan_changes.allow_plan_changes:
            raise PlanChangeNotAllowedError(
                "Plan changes are currently disabled", from_plan.slug, to_plan.slug
            )
        if from_plan.slug == to_plan.slug:
            raise PlanChangeNotAllowedError(
                f"Tenant is already on the {to_plan.name} plan", from_plan.slug, to_plan.slug
            )
        if entitlements.subscription_started_at is not None:
            eligibility = check_change_eligibility(
                from_plan,
                to_plan,
                entitlements.subscription_started_at,
                self.config.plan_changes.min_days_for_downgrade,
                now=self._clock(),
            )
            if not eligibility.eligible:
                raise PlanChangeNotAllowedError(
                    eligibility.reason or "Plan change not allowed", from_plan.slug, to_plan.slug
                )

        proration = self._calculator.calculate_plan_change(
            from_plan.slug, to_plan.slug, self.period
        )
        available = await self.ledger.balance(self.tenant_id)
        self._state = sm.ReviewState(quote=sm.build_quote(proration, available, use_credits))

        logger.info(
            "Plan change started",
            workflow_id=self.workflow_id,
            tenant_id=self.tenant_id,
            from_plan=from_plan.slug,
            to_plan=to_plan.slug,
            change_type=proration.change_type.value,
            prorated_amount=str(proration.prorated_amount),
        )
        return self.view

    def set_use_credits(self, use_credits: bool) -> WorkflowView:
        self._ensure_open("set_use_credits")
        self._state = sm.set_use_credits(self.state, use_credits).state
        return self.view

    async def proceed_to_payment(self) -> WorkflowView:
        """
        Confirm the review.

        Raises:
            ChangeAlreadyInProgressError: Another change for the tenant is in flight
        """
        self._ensure_open("proceed_to_payment")
        transition = sm.proceed_to_payment(self.state)
        self.registry.claim(self.tenant_id, self.workflow_id)
        self._state = transition.state

        if any(isinstance(effect, sm.ApplyPlanChange) for effect in transition.effects):
            await self._process(transition)
        return self.view

    # ------------------------------------------------------------------
    # Payment and processing
    # ------------------------------------------------------------------

    async def submit_payment(self, payment_method: PaymentMethod) -> WorkflowView:
        """Charge the payment method and apply the change."""
        self._ensure_open("submit_payment")
        transition = sm.submit_payment(self.state, payment_method, self.workflow_id)
        self._state = transition.state
        await self._process(transition)
        return self.view

    async def _process(self, transition: sm.Transition) -> None:
        state = transition.state
        if not isinstance(state, sm.ProcessingState):
            raise WorkflowStateError(
                "Plan change effects can only run while processing",
                current_state=state.step,
                operation="process",
            )
        quote = state.quote
        payment_reference: str | None = None
        charged = False

        try:
            async with self.registry.tenant_lock(self.tenant_id):
                # Credit may have moved since the quote was built
                if quote.credits_to_apply > ZERO:
                    available = await self.ledger.balance(self.tenant_id)
                    if available < quote.credits_to_apply:
                        requote = sm.build_quote(quote.proration, available, quote.use_credits)
                        self._abort(
                            state,
                            "INSUFFICIENT_CREDIT",
                            "Available credit changed, please review the new amount",
                            quote=requote,
                        )
                        return

                for effect in transition.effects:
                    if isinstance(effect, sm.ChargePayment) and effect.amount > ZERO:
                        result = await self._charge(effect, quote.proration.currency)
                        if not result.success:
                            declined = PaymentDeclinedError(
                                result.error or "Payment declined",
                                tenant_id=self.tenant_id,
                                amount=effect.amount,
                            )
                            logger.warning(
                                "Plan change payment declined",
                                workflow_id=self.workflow_id,
                                attempt=state.attempt,
                                error=declined.message,
                                **declined.context,
                            )
                            self._state = sm.payment_failed(
                                state, declined.message, code=declined.error_code
                            ).state
                            return
                        payment_reference = result.payment_reference
                        charged = True

                async with self.repository.transaction():
                    record, earned = await self._apply_change(quote, payment_reference)
        except Exception as exc:
            logger.error(
                "Plan change aborted",
                workflow_id=self.workflow_id,
                tenant_id=self.tenant_id,
                payment_reference=payment_reference,
                amount_charged=str(quote.final_amount if charged else ZERO),
                error=str(exc),
                exc_info=True,
            )
            if isinstance(exc, BillingError):
                code, message = exc.error_code, exc.message
            else:
                code, message = "PLAN_CHANGE_FAILED", "The plan change could not be applied"
            self._abort(state, code, message)
            await self._audit_abort(quote, code, message, payment_reference)
            return

        receipt = self._build_receipt(quote, record)
        self._state = sm.processing_succeeded(state, receipt).state
        # Success ends the in-flight window; finish only closes the workflow
        self.registry.release(self.tenant_id, self.workflow_id)

        logger.info(
            "Plan change completed",
            workflow_id=self.workflow_id,
            tenant_id=self.tenant_id,
            plan_change_id=record.id,
            from_plan=record.from_plan,
            to_plan=record.to_plan,
            amount_charged=str(record.prorated_amount),
            credits_applied=str(record.credits_applied),
            credits_generated=str(record.credits_generated),
        )
        await self._notify(record, earned)
        await self._audit_completed(record)

    async def _charge(self, effect: sm.ChargePayment, currency: str) -> ChargeResult:
        try:
            return await self.gateway.charge(
                self.tenant_id,
                to_minor_units(effect.amount, currency),
                effect.payment_method,
                currency=currency,
                idempotency_key=effect.idempotency_key,
            )
        except Exception as exc:
            logger.error(
                "Payment gateway error",
                workflow_id=self.workflow_id,
                tenant_id=self.tenant_id,
                idempotency_key=effect.idempotency_key,
                error=str(exc),
            )
            return ChargeResult(success=False, error="Payment could not be processed")

    def _abort(
        self,
        state: sm.ProcessingState,
        code: str,
        message: str,
        quote: sm.PlanChangeQuote | None = None,
    ) -> None:
        self._state = sm.processing_aborted(state, code, message, quote=quote).state
        self.registry.release(self.tenant_id, self.workflow_id)

    async def _apply_change(
        self, quote: sm.PlanChangeQuote, payment_reference: str | None
    ) -> tuple[PlanChangeRecord, CreditTransaction | None]:
        """Record history, move credit and persist the new module states."""
        proration = quote.proration
        now = self._clock()

        entitlements = await self.repository.get_entitlements(self.tenant_id)
        if entitlements is None:
            raise TenantNotProvisionedError(
                f"Tenant {self.tenant_id} has no entitlements", tenant_id=self.tenant_id
            )
        if entitlements.plan_slug != proration.from_plan:
            raise PlanChangeError(
                "Tenant plan changed while this change was pending",
                context={"expected": proration.from_plan, "current": entitlements.plan_slug},
                recovery_hint="Start a new plan change",
            )

        is_downgrade = proration.change_type == ChangeType.DOWNGRADE
        credits_generated = (
            -proration.prorated_amount
            if is_downgrade and proration.prorated_amount < ZERO
            else ZERO
        )

        record = PlanChangeRecord(
            tenant_id=self.tenant_id,
            change_type=proration.change_type,
            from_plan=proration.from_plan,
            to_plan=proration.to_plan,
            from_cycle=self.period.cycle,
            to_cycle=self.period.cycle,
            prorated_amount=quote.final_amount,
            credits_applied=quote.credits_to_apply,
            credits_generated=credits_generated,
            effective_date=now,
            payment_reference=payment_reference,
            status=PlanChangeStatus.COMPLETED,
            actor=self.actor,
            created_at=now,
        )
        await self.repository.add_plan_change(record)

        from_name = self.plans.get(proration.from_plan).name
        to_name = self.plans.get(proration.to_plan).name

        earned: CreditTransaction | None = None
        if credits_generated > ZERO:
            earned = await self.ledger.earn(
                self.tenant_id,
                credits_generated,
                reason=f"Credit from downgrade {from_name} to {to_name}",
                source_reference=record.id,
                expires_at=now + timedelta(days=self.config.credits.expiry_days),
                reference_type=CreditReferenceType.PLAN_CHANGE,
            )

        if quote.credits_to_apply > ZERO:
            await self.ledger.spend(
                self.tenant_id,
                quote.credits_to_apply,
                reason=f"Credit applied to change {from_name} to {to_name}",
                source_reference=record.id,
                reference_type=CreditReferenceType.PLAN_CHANGE,
            )

        resolver = EntitlementResolver(self.catalog, self.plans, entitlements, clock=self._clock)
        to_plan = self.plans.get(proration.to_plan)
        resolver.apply_states(resolver.resolve_effective_states(to_plan), plan=to_plan)
        entitlements.subscription_started_at = entitlements.subscription_started_at or now
        await self.repository.save_entitlements(entitlements)

        return record, earned

    def _build_receipt(self, quote: sm.PlanChangeQuote, record: PlanChangeRecord) -> Receipt:
        lines = [
            ReceiptLine(
                description=item.description,
                amount=-item.amount if item.type == BreakdownItemType.CREDIT else item.amount,
            )
            for item in quote.proration.breakdown
        ]
        if quote.credits_to_apply > ZERO:
            lines.append(
                ReceiptLine(description="Credits applied", amount=-quote.credits_to_apply)
            )
        return Receipt(
            plan_change_id=record.id,
            lines=lines,
            total=quote.final_amount,
            currency=quote.proration.currency,
            payment_reference=record.payment_reference,
        )

    async def _notify(self, record: PlanChangeRecord, earned: CreditTransaction | None) -> None:
        # Fire and forget; helpers log and swallow sink failures
        notifications = self.config.notifications
        if notifications.send_plan_change:
            await emit_plan_change(
                self.notification_sink,
                tenant_id=self.tenant_id,
                change_type=record.change_type.value,
                from_plan=record.from_plan,
                to_plan=record.to_plan,
                amount_charged=record.prorated_amount,
                credits_applied=record.credits_applied,
                credits_generated=record.credits_generated,
                plan_change_id=record.id,
            )
        if earned is not None and notifications.send_credits_earned and earned.expires_at:
            await emit_credits_earned(
                self.notification_sink,
                tenant_id=self.tenant_id,
                amount=earned.amount,
                expires_at=earned.expires_at,
                reason=earned.reason,
                plan_change_id=record.id,
            )

    async def _audit_completed(self, record: PlanChangeRecord) -> None:
        if not self.config.audit_log_enabled:
            return
        try:
            await self.audit_sink.log(
                AuditEvent(
                    activity_type=ActivityType.PLAN_CHANGE_COMPLETED,
                    action=f"plan.{record.change_type.value}",
                    description=f"Plan changed from {record.from_plan} to {record.to_plan}",
                    tenant_id=self.tenant_id,
                    actor=self.actor,
                    severity=ActivitySeverity.MEDIUM,
                    from_plan=record.from_plan,
                    to_plan=record.to_plan,
                    details={
                        "plan_change_id": record.id,
                        "from_cycle": record.from_cycle.value,
                        "to_cycle": record.to_cycle.value,
                        "prorated_amount": str(record.prorated_amount),
                        "credits_applied": str(record.credits_applied),
                        "credits_generated": str(record.credits_generated),
                        "payment_reference": record.payment_reference,
                        "status": record.status.value,
                    },
                    timestamp=record.effective_date,
                )
            )
        except Exception as exc:
            # The change is committed; a lost audit entry must not undo it
            logger.error(
                "Audit logging failed for completed plan change",
                tenant_id=self.tenant_id,
                plan_change_id=record.id,
                error=str(exc),
            )

    async def _audit_abort(
        self,
        quote: sm.PlanChangeQuote,
        code: str,
        message: str,
        payment_reference: str | None,
    ) -> None:
        if not self.config.audit_log_enabled:
            return
        try:
            await self.audit_sink.log(
                AuditEvent(
                    activity_type=ActivityType.PLAN_CHANGE_ABORTED,
                    action="plan.change_aborted",
                    description=message,
                    tenant_id=self.tenant_id,
                    actor=self.actor,
                    severity=ActivitySeverity.HIGH,
                    from_plan=quote.proration.from_plan,
                    to_plan=quote.proration.to_plan,
                    details={
                        "workflow_id": self.workflow_id,
                        "error_code": code,
                        "payment_reference": payment_reference,
                    },
                    timestamp=self._clock(),
                )
            )
        except Exception as exc:
            logger.error(
                "Audit logging failed for aborted plan change",
                tenant_id=self.tenant_id,
                workflow_id=self.workflow_id,
                error=str(exc),
            )

    # ------------------------------------------------------------------
    # Closing
    # ------------------------------------------------------------------

    def finish(self) -> WorkflowView:
        """Acknowledge a completed change and close the workflow."""
        self._ensure_open("finish")
        if not isinstance(self.state, sm.SuccessState):
            raise WorkflowStateError(
                "Only completed plan changes can be finished",
                current_state=self.state.step,
                operation="finish",
            )
        self._closed = True
        return self.view

    def discard(self) -> WorkflowView:
        """Abandon the change before processing. Has no side effects."""
        self._ensure_open("discard")
        if not isinstance(self.state, sm.ReviewState | sm.PaymentState):
            raise WorkflowStateError(
                "Plan changes can only be discarded during review or payment",
                current_state=self.state.step,
                operation="discard",
            )
        self.registry.release(self.tenant_id, self.workflow_id)
        self._closed = True
        logger.info(
            "Plan change discarded", workflow_id=self.workflow_id, tenant_id=self.tenant_id
        )
        return self.view
