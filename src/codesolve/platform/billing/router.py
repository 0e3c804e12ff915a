"""
Billing entitlement and plan change router.

Maps the engine's operations one-to-one onto HTTP endpoints. Billing errors
are returned with their own status code and ``to_dict()`` body.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from codesolve.platform.audit.models import ActivityType, AuditEvent
from codesolve.platform.billing.catalog.models import BillingCycle, ModuleDefinition, Plan
from codesolve.platform.billing.credits.models import (
    CreditReferenceType,
    CreditSummary,
    CreditTransaction,
)
from codesolve.platform.billing.dependencies import BillingEngine, get_actor, get_billing_engine
from codesolve.platform.billing.entitlements.models import (
    AccessSource,
    ModuleState,
    TenantEntitlements,
)
from codesolve.platform.billing.exceptions import BillingError
from codesolve.platform.billing.money_utils import ZERO
from codesolve.platform.billing.payments import PaymentMethod
from codesolve.platform.billing.plan_changes.models import PlanChangeRecord
from codesolve.platform.billing.plan_changes.workflow import WorkflowView
from codesolve.platform.billing.proration.calculator import calculate_annual_savings
from codesolve.platform.billing.proration.models import (
    AnnualSavings,
    PlanChangeSummary,
    ProrationResult,
    SubscriptionPeriod,
)
from codesolve.platform.billing.time_utils import UtcDatetime

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])

Engine = Annotated[BillingEngine, Depends(get_billing_engine)]
Actor = Annotated[str, Depends(get_actor)]


@contextmanager
def billing_errors() -> Iterator[None]:
    """Translate billing errors into HTTP errors."""
    try:
        yield
    except BillingError as e:
        logger.info("Billing request rejected", error_code=e.error_code, message=e.message)
        raise HTTPException(status_code=e.status_code, detail=e.to_dict()) from e


# ==================== Schemas ====================


class ProrationRequest(BaseModel):
    from_plan: str = Field(description="Current plan slug")
    to_plan: str = Field(description="Target plan slug")
    period: SubscriptionPeriod
    now: UtcDatetime | None = Field(None, description="Change instant, defaults to now")


class ProrationResponse(BaseModel):
    result: ProrationResult
    summary: PlanChangeSummary


class ProvisionRequest(BaseModel):
    plan: str
    billing_cycle: BillingCycle = BillingCycle.MONTHLY


class TenantModulesResponse(BaseModel):
    tenant_id: str
    plan: str
    modules: list[ModuleState]
    enabled_modules: list[str]


class EligibilityResponse(BaseModel):
    module_id: str
    can_enable: bool
    reason: str | None = None
    error_code: str | None = None


class EnableModuleRequest(BaseModel):
    access_source: AccessSource = AccessSource.MANUAL
    force: bool = Field(False, description="Skip dependency and plan checks")
    expires_at: UtcDatetime | None = None
    quantity: int | None = Field(None, ge=1)


class QuantityRequest(BaseModel):
    quantity: int


class QuantityResponse(BaseModel):
    updated: bool
    state: ModuleState | None = None


class ResolveRequest(BaseModel):
    plan: str


class CreditRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    reason: str = Field(min_length=1)
    source_reference: str | None = None
    reference_type: CreditReferenceType = CreditReferenceType.MANUAL
    expires_at: UtcDatetime | None = None


class StartPlanChangeRequest(BaseModel):
    to_plan: str
    period: SubscriptionPeriod
    use_credits: bool = True


class UseCreditsRequest(BaseModel):
    use_credits: bool


class SubmitPaymentRequest(BaseModel):
    payment_method: PaymentMethod


# ==================== Catalog and proration ====================


@router.get("/plans", response_model=list[Plan])
async def list_plans(engine: Engine) -> list[Plan]:
    """List public plans in upgrade order."""
    return engine.plans.public()


@router.get("/plans/{plan_slug}/annual-savings", response_model=AnnualSavings)
async def get_annual_savings(plan_slug: str, engine: Engine) -> AnnualSavings:
    with billing_errors():
        return calculate_annual_savings(engine.plans.get(plan_slug))


@router.post("/proration/calculate", response_model=ProrationResponse)
async def calculate_plan_change(request: ProrationRequest, engine: Engine) -> ProrationResponse:
    """Preview the prorated amount of a plan change."""
    with billing_errors():
        result = engine.calculator.calculate_plan_change(
            request.from_plan, request.to_plan, request.period, now=request.now
        )
        return ProrationResponse(
            result=result, summary=engine.calculator.format_plan_change_result(result)
        )


# ==================== Tenant modules ====================


@router.post(
    "/tenants/{tenant_id}/provision",
    response_model=TenantEntitlements,
    status_code=status.HTTP_201_CREATED,
)
async def provision_tenant(
    tenant_id: str, request: ProvisionRequest, engine: Engine, actor: Actor
) -> TenantEntitlements:
    with billing_errors():
        return await engine.entitlements.provision_tenant(
            tenant_id, request.plan, request.billing_cycle, actor=actor
        )


@router.get("/tenants/{tenant_id}/modules", response_model=TenantModulesResponse)
async def list_tenant_modules(tenant_id: str, engine: Engine) -> TenantModulesResponse:
    with billing_errors():
        resolver = await engine.entitlements.get_resolver(tenant_id)
        return TenantModulesResponse(
            tenant_id=tenant_id,
            plan=resolver.entitlements.plan_slug,
            modules=list(resolver.entitlements.modules.values()),
            enabled_modules=resolver.enabled_modules(),
        )


@router.get("/tenants/{tenant_id}/addons", response_model=list[ModuleDefinition])
async def list_available_addons(tenant_id: str, engine: Engine) -> list[ModuleDefinition]:
    with billing_errors():
        return await engine.entitlements.available_addons(tenant_id)


@router.get(
    "/tenants/{tenant_id}/modules/{module_id}/eligibility", response_model=EligibilityResponse
)
async def check_module_eligibility(
    tenant_id: str, module_id: str, engine: Engine
) -> EligibilityResponse:
    with billing_errors():
        check = await engine.entitlements.can_enable_module(tenant_id, module_id)
        return EligibilityResponse(
            module_id=module_id,
            can_enable=check.can_enable,
            reason=check.reason,
            error_code=check.error.error_code if check.error else None,
        )


@router.post("/tenants/{tenant_id}/modules/{module_id}/enable", response_model=ModuleState)
async def enable_module(
    tenant_id: str,
    module_id: str,
    request: EnableModuleRequest,
    engine: Engine,
    actor: Actor,
) -> ModuleState:
    with billing_errors():
        return await engine.entitlements.enable_module(
            tenant_id,
            module_id,
            request.access_source,
            actor,
            force=request.force,
            expires_at=request.expires_at,
            quantity=request.quantity,
        )


@router.post("/tenants/{tenant_id}/modules/{module_id}/disable", response_model=ModuleState)
async def disable_module(
    tenant_id: str, module_id: str, engine: Engine, actor: Actor
) -> ModuleState:
    with billing_errors():
        return await engine.entitlements.disable_module(tenant_id, module_id, actor)


@router.put("/tenants/{tenant_id}/modules/{module_id}/quantity", response_model=QuantityResponse)
async def update_module_quantity(
    tenant_id: str,
    module_id: str,
    request: QuantityRequest,
    engine: Engine,
    actor: Actor,
) -> QuantityResponse:
    with billing_errors():
        state = await engine.entitlements.update_module_quantity(
            tenant_id, module_id, request.quantity, actor
        )
        return QuantityResponse(updated=state is not None, state=state)


@router.post("/tenants/{tenant_id}/modules/resolve", response_model=list[ModuleState])
async def resolve_effective_states(
    tenant_id: str, request: ResolveRequest, engine: Engine
) -> list[ModuleState]:
    """Preview module states under another plan without saving them."""
    with billing_errors():
        resolver = await engine.entitlements.get_resolver(tenant_id)
        return resolver.resolve_effective_states(engine.plans.get(request.plan))


# ==================== Credits ====================


@router.get("/tenants/{tenant_id}/credits", response_model=CreditSummary)
async def get_credit_summary(tenant_id: str, engine: Engine) -> CreditSummary:
    return await engine.ledger.summary(tenant_id)


@router.get(
    "/tenants/{tenant_id}/credits/transactions", response_model=list[CreditTransaction]
)
async def list_credit_transactions(tenant_id: str, engine: Engine) -> list[CreditTransaction]:
    return await engine.ledger.transactions(tenant_id)


@router.post(
    "/tenants/{tenant_id}/credits/earn",
    response_model=CreditTransaction,
    status_code=status.HTTP_201_CREATED,
)
async def earn_credits(
    tenant_id: str, request: CreditRequest, engine: Engine, actor: Actor
) -> CreditTransaction:
    with billing_errors():
        async with engine.registry.tenant_lock(tenant_id):
            async with engine.repository.transaction():
                transaction = await engine.ledger.earn(
                    tenant_id,
                    request.amount,
                    request.reason,
                    source_reference=request.source_reference,
                    expires_at=request.expires_at,
                    reference_type=request.reference_type,
                )
        logger.info("Credits granted", tenant_id=tenant_id, actor=actor, amount=str(request.amount))
        return transaction


@router.post(
    "/tenants/{tenant_id}/credits/spend",
    response_model=CreditTransaction,
    status_code=status.HTTP_201_CREATED,
)
async def spend_credits(
    tenant_id: str, request: CreditRequest, engine: Engine, actor: Actor
) -> CreditTransaction:
    with billing_errors():
        async with engine.registry.tenant_lock(tenant_id):
            async with engine.repository.transaction():
                transaction = await engine.ledger.spend(
                    tenant_id,
                    request.amount,
                    request.reason,
                    source_reference=request.source_reference,
                    reference_type=request.reference_type,
                )
        logger.info("Credits debited", tenant_id=tenant_id, actor=actor, amount=str(request.amount))
        return transaction


@router.post("/tenants/{tenant_id}/credits/expire", response_model=list[CreditTransaction])
async def expire_credits(tenant_id: str, engine: Engine, actor: Actor) -> list[CreditTransaction]:
    """Run the expiry sweep for one tenant."""
    async with engine.registry.tenant_lock(tenant_id):
        async with engine.repository.transaction():
            expired = await engine.ledger.expire_credits(tenant_id)

    if expired and engine.config.audit_log_enabled:
        await engine.audit_sink.log(
            AuditEvent(
                activity_type=ActivityType.CREDITS_EXPIRED,
                action="credits.expire",
                description=f"{len(expired)} credit entries expired",
                tenant_id=tenant_id,
                actor=actor,
                details={
                    "amount": str(sum((tx.amount for tx in expired), ZERO)),
                    "earned_entries": [tx.source_reference for tx in expired],
                },
            )
        )
    return expired


# ==================== Plan changes ====================


@router.get("/tenants/{tenant_id}/plan-changes", response_model=list[PlanChangeRecord])
async def list_plan_changes(tenant_id: str, engine: Engine) -> list[PlanChangeRecord]:
    return await engine.plan_changes.list_plan_changes(tenant_id)


@router.post(
    "/tenants/{tenant_id}/plan-changes",
    response_model=WorkflowView,
    status_code=status.HTTP_201_CREATED,
)
async def start_plan_change(
    tenant_id: str, request: StartPlanChangeRequest, engine: Engine, actor: Actor
) -> WorkflowView:
    with billing_errors():
        return await engine.plan_changes.start(
            tenant_id,
            request.to_plan,
            request.period,
            use_credits=request.use_credits,
            actor=actor,
        )


@router.get("/plan-changes/{workflow_id}", response_model=WorkflowView)
async def get_plan_change(workflow_id: str, engine: Engine) -> WorkflowView:
    with billing_errors():
        return engine.plan_changes.view(workflow_id)


@router.post("/plan-changes/{workflow_id}/credits", response_model=WorkflowView)
async def set_use_credits(
    workflow_id: str, request: UseCreditsRequest, engine: Engine
) -> WorkflowView:
    with billing_errors():
        return engine.plan_changes.set_use_credits(workflow_id, request.use_credits)


@router.post("/plan-changes/{workflow_id}/proceed", response_model=WorkflowView)
async def proceed_to_payment(workflow_id: str, engine: Engine) -> WorkflowView:
    with billing_errors():
        return await engine.plan_changes.proceed_to_payment(workflow_id)


@router.post("/plan-changes/{workflow_id}/payment", response_model=WorkflowView)
async def submit_payment(
    workflow_id: str, request: SubmitPaymentRequest, engine: Engine
) -> WorkflowView:
    with billing_errors():
        return await engine.plan_changes.submit_payment(workflow_id, request.payment_method)


@router.post("/plan-changes/{workflow_id}/finish", response_model=WorkflowView)
async def finish_plan_change(workflow_id: str, engine: Engine) -> WorkflowView:
    with billing_errors():
        return engine.plan_changes.finish(workflow_id)


@router.post("/plan-changes/{workflow_id}/discard", response_model=WorkflowView)
async def discard_plan_change(workflow_id: str, engine: Engine) -> WorkflowView:
    with billing_errors():
        return engine.plan_changes.discard(workflow_id)
