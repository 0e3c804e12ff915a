"""
Tenant entitlement models.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from codesolve.platform.billing.catalog.models import BillingCycle
from codesolve.platform.billing.exceptions import BillingError
from codesolve.platform.billing.time_utils import UtcDatetime


class ModuleStatus(str, Enum):
    """Stored status of a tenant module."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class AccessSource(str, Enum):
    """Why a module is active for a tenant."""

    CORE = "core"
    PLAN = "plan"
    ADDON = "addon"
    MANUAL = "manual"
    TRIAL = "trial"


# Sources that stand on their own, independent of the plan
GRANT_SOURCES = frozenset({AccessSource.ADDON, AccessSource.MANUAL, AccessSource.TRIAL})


class ModuleState(BaseModel):
    """
    Per-tenant state of one module.

    States are never deleted. Disabling flips ``status`` and keeps the access
    source and quantity so the module can be reactivated later.
    """

    model_config = ConfigDict(validate_assignment=True)

    module_id: str
    status: ModuleStatus = ModuleStatus.INACTIVE
    access_source: AccessSource = AccessSource.PLAN
    quantity: int = Field(1, ge=1, description="Purchased units for unit-priced modules")
    enabled_at: UtcDatetime | None = None
    expires_at: UtcDatetime | None = Field(None, description="End of trial or add-on grant")
    disabled_at: UtcDatetime | None = Field(None, description="Set when explicitly disabled")

    @property
    def is_active(self) -> bool:
        return self.status == ModuleStatus.ACTIVE

    @property
    def is_explicitly_disabled(self) -> bool:
        return self.status == ModuleStatus.INACTIVE and self.disabled_at is not None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class ModuleGrant(BaseModel):
    """An explicit (add-on, manual or trial) grant that survives plan changes."""

    model_config = ConfigDict(frozen=True)

    module_id: str
    access_source: AccessSource
    quantity: int = Field(1, ge=1)
    expires_at: UtcDatetime | None = None

    def is_live(self, now: datetime) -> bool:
        return self.expires_at is None or self.expires_at > now


class TenantEntitlements(BaseModel):
    """A tenant's plan and its module states."""

    model_config = ConfigDict(validate_assignment=True)

    tenant_id: str
    plan_slug: str
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    subscription_started_at: UtcDatetime | None = None
    modules: dict[str, ModuleState] = Field(default_factory=dict)

    def state(self, module_id: str) -> ModuleState | None:
        return self.modules.get(module_id)

    def grants(self) -> list[ModuleGrant]:
        """Explicit grants held by currently active states."""
        return [
            ModuleGrant(
                module_id=state.module_id,
                access_source=state.access_source,
                quantity=state.quantity,
                expires_at=state.expires_at,
            )
            for state in self.modules.values()
            if state.is_active and state.access_source in GRANT_SOURCES
        ]


@dataclass(frozen=True)
class EnableCheck:
    """Outcome of ``can_enable_module``."""

    can_enable: bool
    reason: str | None = None
    error: BillingError | None = None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error
