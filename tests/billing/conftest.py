"""
Billing fixtures: default catalogs, in-memory repository and fakes for the
payment gateway, notification sink and audit sink.
"""

from datetime import datetime, timedelta
from typing import Any

import pytest

from codesolve.platform.audit.models import AuditEvent
from codesolve.platform.billing.catalog.defaults import get_module_catalog, get_plan_catalog
from codesolve.platform.billing.catalog.models import BillingCycle
from codesolve.platform.billing.catalog.service import ModuleCatalog, PlanCatalog
from codesolve.platform.billing.config import BillingConfig
from codesolve.platform.billing.credits.ledger import CreditLedger
from codesolve.platform.billing.dependencies import BillingEngine
from codesolve.platform.billing.entitlements.service import EntitlementService
from codesolve.platform.billing.locks import TenantChangeRegistry
from codesolve.platform.billing.payments import ChargeResult, PaymentMethod, PaymentMethodType
from codesolve.platform.billing.proration.calculator import ProrationCalculator
from codesolve.platform.billing.proration.models import SubscriptionPeriod
from codesolve.platform.billing.repository import InMemoryBillingRepository


class RecordingGateway:
    """Payment gateway that records charges and replays scripted results."""

    def __init__(self, results: list[ChargeResult] | None = None) -> None:
        self.results = list(results or [])
        self.charges: list[dict[str, Any]] = []

    async def charge(
        self,
        tenant_id: str,
        amount: int,
        payment_method: PaymentMethod,
        *,
        currency: str = "BRL",
        idempotency_key: str | None = None,
    ) -> ChargeResult:
        self.charges.append(
            {
                "tenant_id": tenant_id,
                "amount": amount,
                "payment_method": payment_method,
                "currency": currency,
                "idempotency_key": idempotency_key,
            }
        )
        if self.results:
            return self.results.pop(0)
        return ChargeResult(success=True, payment_reference=f"pay_{len(self.charges)}")


class ExplodingGateway:
    """Payment gateway whose transport always fails."""

    def __init__(self) -> None:
        self.calls = 0

    async def charge(self, tenant_id: str, amount: int, payment_method: PaymentMethod, **_: Any):
        self.calls += 1
        raise ConnectionError("gateway unreachable")


class RecordingNotificationSink:
    def __init__(self) -> None:
        self.sent: list[tuple[str, dict[str, Any]]] = []

    async def send(self, event_type: str, payload: dict[str, Any]) -> None:
        self.sent.append((event_type, payload))

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [payload for kind, payload in self.sent if kind == event_type]


class FailingNotificationSink:
    async def send(self, event_type: str, payload: dict[str, Any]) -> None:
        raise RuntimeError("smtp down")


class RecordingAuditSink:
    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    async def log(self, event: AuditEvent) -> None:
        self.events.append(event)

    def actions(self) -> list[str]:
        return [event.action for event in self.events]


def make_period(
    now: datetime,
    days_in_period: int = 30,
    days_remaining: int = 20,
    cycle: BillingCycle = BillingCycle.MONTHLY,
) -> SubscriptionPeriod:
    """Period of ``days_in_period`` days with ``days_remaining`` whole days left at ``now``."""
    end = now + timedelta(days=days_remaining)
    return SubscriptionPeriod(
        start_date=end - timedelta(days=days_in_period), end_date=end, cycle=cycle
    )


@pytest.fixture
def card() -> PaymentMethod:
    return PaymentMethod(
        type=PaymentMethodType.CREDIT_CARD,
        token="tok_visa",
        card_holder_name="Maria Silva",
        card_last4="4242",
        card_exp_month=12,
        card_exp_year=2030,
    )


@pytest.fixture
def module_catalog() -> ModuleCatalog:
    return get_module_catalog()


@pytest.fixture
def plan_catalog() -> PlanCatalog:
    return get_plan_catalog()


@pytest.fixture
def repository() -> InMemoryBillingRepository:
    return InMemoryBillingRepository()


@pytest.fixture
def registry() -> TenantChangeRegistry:
    return TenantChangeRegistry()


@pytest.fixture
def billing_config() -> BillingConfig:
    return BillingConfig()


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def notification_sink() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def ledger(repository, clock) -> CreditLedger:
    return CreditLedger(repository, clock=clock)


@pytest.fixture
def calculator(plan_catalog, clock) -> ProrationCalculator:
    return ProrationCalculator(plan_catalog, clock=clock)


@pytest.fixture
def entitlement_service(
    repository, module_catalog, plan_catalog, audit_sink, registry, clock
) -> EntitlementService:
    return EntitlementService(
        repository, module_catalog, plan_catalog, audit_sink, registry, clock=clock
    )


@pytest.fixture
def engine(
    repository, gateway, notification_sink, audit_sink, billing_config, registry, clock
) -> BillingEngine:
    return BillingEngine(
        repository=repository,
        gateway=gateway,
        notification_sink=notification_sink,
        audit_sink=audit_sink,
        config=billing_config,
        registry=registry,
        clock=clock,
    )


@pytest.fixture
def make_period_at():
    """Build periods relative to a given instant."""
    return make_period


@pytest.fixture
def exploding_gateway() -> ExplodingGateway:
    return ExplodingGateway()


@pytest.fixture
def failing_notification_sink() -> FailingNotificationSink:
    return FailingNotificationSink()


@pytest.fixture
def scripted_gateway():
    """Factory for gateways that replay the given charge results."""
    return RecordingGateway
