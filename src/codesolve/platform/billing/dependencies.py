"""
Billing engine wiring and FastAPI dependencies.

``BillingEngine`` holds one instance of every collaborator so request
handlers share the tenant registry and open plan-change workflows.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated

from fastapi import Header, HTTPException, status

from codesolve.platform.audit.service import AuditSink, StructlogAuditSink
from codesolve.platform.billing.catalog.defaults import get_module_catalog, get_plan_catalog
from codesolve.platform.billing.catalog.service import ModuleCatalog, PlanCatalog
from codesolve.platform.billing.config import BillingConfig, get_billing_config
from codesolve.platform.billing.credits.ledger import CreditLedger
from codesolve.platform.billing.entitlements.service import EntitlementService
from codesolve.platform.billing.events import LoggingNotificationSink, NotificationSink
from codesolve.platform.billing.exceptions import BillingConfigurationError
from codesolve.platform.billing.locks import TenantChangeRegistry
from codesolve.platform.billing.payments import HttpPaymentGateway, PaymentGateway
from codesolve.platform.billing.plan_changes.service import PlanChangeService
from codesolve.platform.billing.proration.calculator import ProrationCalculator
from codesolve.platform.billing.repository import BillingRepository
from codesolve.platform.billing.sql_repository import SQLAlchemyBillingRepository
from codesolve.platform.billing.time_utils import utcnow
from codesolve.platform.db import get_session_maker


@dataclass
class BillingEngine:
    """All billing collaborators, built once per process."""

    repository: BillingRepository
    gateway: PaymentGateway
    notification_sink: NotificationSink
    audit_sink: AuditSink
    config: BillingConfig
    catalog: ModuleCatalog = field(default_factory=get_module_catalog)
    plans: PlanCatalog = field(default_factory=get_plan_catalog)
    registry: TenantChangeRegistry = field(default_factory=TenantChangeRegistry)
    clock: Callable[[], datetime] = utcnow

    def __post_init__(self) -> None:
        self.ledger = CreditLedger(
            self.repository,
            clock=self.clock,
            expiry_days=self.config.credits.expiry_days,
            currency=self.config.currency.default_currency,
        )
        self.calculator = ProrationCalculator(
            self.plans, clock=self.clock, locale=self.config.currency.default_locale
        )
        self.entitlements = EntitlementService(
            self.repository,
            self.catalog,
            self.plans,
            self.audit_sink,
            self.registry,
            clock=self.clock,
        )
        self.plan_changes = PlanChangeService(
            self.repository,
            self.catalog,
            self.plans,
            self.ledger,
            self.gateway,
            self.notification_sink,
            self.audit_sink,
            self.registry,
            self.config,
            clock=self.clock,
        )


def build_billing_engine(config: BillingConfig | None = None) -> BillingEngine:
    """Engine backed by the platform database and the HTTP payment gateway."""
    config = config or get_billing_config()
    if not config.payment.gateway_url:
        raise BillingConfigurationError(
            "Payment gateway URL is not configured", config_key="billing.payment_gateway_url"
        )
    return BillingEngine(
        repository=SQLAlchemyBillingRepository(get_session_maker()),
        gateway=HttpPaymentGateway(config.payment.gateway_url, config.payment.timeout_seconds),
        notification_sink=LoggingNotificationSink(),
        audit_sink=StructlogAuditSink(),
        config=config,
    )


_engine: BillingEngine | None = None


def get_billing_engine() -> BillingEngine:
    """FastAPI dependency returning the process-wide billing engine."""
    global _engine
    if _engine is None:
        _engine = build_billing_engine()
    return _engine


def set_billing_engine(engine: BillingEngine | None) -> None:
    global _engine
    _engine = engine


async def get_actor(
    x_actor_id: Annotated[str | None, Header(description="Acting user ID")] = None,
) -> str:
    """Identify who is acting, for audit records."""
    if not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-Id header is required",
        )
    return x_actor_id
