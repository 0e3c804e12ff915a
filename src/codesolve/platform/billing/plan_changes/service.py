"""
Plan change service.

Creates ``PlanChangeWorkflow`` instances, keeps the open ones addressable by
id between requests and forgets them once they are finished or discarded.
Unclaimed workflows idle past the configured TTL are evicted on the next start.
"""

from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from codesolve.platform.audit.service import AuditSink
from codesolve.platform.billing.catalog.service import ModuleCatalog, PlanCatalog
from codesolve.platform.billing.config import BillingConfig
from codesolve.platform.billing.credits.ledger import CreditLedger
from codesolve.platform.billing.events import NotificationSink
from codesolve.platform.billing.exceptions import WorkflowNotFoundError
from codesolve.platform.billing.locks import TenantChangeRegistry
from codesolve.platform.billing.payments import PaymentGateway, PaymentMethod
from codesolve.platform.billing.plan_changes.models import PlanChangeRecord
from codesolve.platform.billing.plan_changes.workflow import PlanChangeWorkflow, WorkflowView
from codesolve.platform.billing.proration.models import SubscriptionPeriod
from codesolve.platform.billing.repository import BillingRepository
from codesolve.platform.billing.time_utils import utcnow

logger = structlog.get_logger(__name__)


class PlanChangeService:
    """Entry point for plan changes from request handlers."""

    def __init__(
        self,
        repository: BillingRepository,
        catalog: ModuleCatalog,
        plans: PlanCatalog,
        ledger: CreditLedger,
        gateway: PaymentGateway,
        notification_sink: NotificationSink,
        audit_sink: AuditSink,
        registry: TenantChangeRegistry,
        config: BillingConfig,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
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
        self._workflows: dict[str, PlanChangeWorkflow] = {}
        self._last_seen: dict[str, datetime] = {}

    def create_workflow(
        self,
        tenant_id: str,
        to_plan: str,
        period: SubscriptionPeriod,
        actor: str | None = None,
    ) -> PlanChangeWorkflow:
        return PlanChangeWorkflow(
            tenant_id=tenant_id,
            to_plan=to_plan,
            period=period,
            repository=self.repository,
            catalog=self.catalog,
            plans=self.plans,
            ledger=self.ledger,
            gateway=self.gateway,
            notification_sink=self.notification_sink,
            audit_sink=self.audit_sink,
            registry=self.registry,
            config=self.config,
            actor=actor,
            clock=self._clock,
        )

    async def start(
        self,
        tenant_id: str,
        to_plan: str,
        period: SubscriptionPeriod,
        *,
        use_credits: bool = True,
        actor: str | None = None,
    ) -> WorkflowView:
        self.evict_idle()
        workflow = self.create_workflow(tenant_id, to_plan, period, actor=actor)
        view = await workflow.start(use_credits=use_credits)
        self._workflows[workflow.workflow_id] = workflow
        self._last_seen[workflow.workflow_id] = self._clock()
        return view

    def get(self, workflow_id: str) -> PlanChangeWorkflow:
        workflow = self._workflows.get(workflow_id)
        if workflow is None or workflow.closed:
            raise WorkflowNotFoundError(
                f"Plan change {workflow_id} not found", workflow_id=workflow_id
            )
        self._last_seen[workflow_id] = self._clock()
        return workflow

    def view(self, workflow_id: str) -> WorkflowView:
        return self.get(workflow_id).view

    def set_use_credits(self, workflow_id: str, use_credits: bool) -> WorkflowView:
        return self.get(workflow_id).set_use_credits(use_credits)

    async def proceed_to_payment(self, workflow_id: str) -> WorkflowView:
        return await self.get(workflow_id).proceed_to_payment()

    async def submit_payment(self, workflow_id: str, payment_method: PaymentMethod) -> WorkflowView:
        return await self.get(workflow_id).submit_payment(payment_method)

    def finish(self, workflow_id: str) -> WorkflowView:
        view = self.get(workflow_id).finish()
        self._forget(workflow_id)
        return view

    def discard(self, workflow_id: str) -> WorkflowView:
        view = self.get(workflow_id).discard()
        self._forget(workflow_id)
        return view

    async def list_plan_changes(self, tenant_id: str) -> list[PlanChangeRecord]:
        return await self.repository.list_plan_changes(tenant_id)

    def evict_idle(self) -> int:
        """
        Forget workflows left idle longer than the configured TTL.

        A workflow holding its tenant's claim (between payment and success) is
        kept until the caller discards it. Returns the number evicted.
        """
        cutoff = self._clock() - timedelta(
            minutes=self.config.plan_changes.idle_workflow_ttl_minutes
        )
        evicted = 0
        for workflow_id, last_seen in list(self._last_seen.items()):
            if last_seen > cutoff:
                continue
            workflow = self._workflows.get(workflow_id)
            if (
                workflow is not None
                and self.registry.active_workflow(workflow.tenant_id) == workflow_id
            ):
                continue
            self._forget(workflow_id)
            evicted += 1
        if evicted:
            logger.info("Evicted idle plan change workflows", count=evicted)
        return evicted

    def _forget(self, workflow_id: str) -> None:
        self._workflows.pop(workflow_id, None)
        self._last_seen.pop(workflow_id, None)
