"""
Tenant module entitlements.
"""

from codesolve.platform.billing.entitlements.models import (
    GRANT_SOURCES,
    AccessSource,
    EnableCheck,
    ModuleGrant,
    ModuleState,
    ModuleStatus,
    TenantEntitlements,
)
from codesolve.platform.billing.entitlements.resolver import EntitlementResolver

__all__ = [
    "AccessSource",
    "EnableCheck",
    "EntitlementResolver",
    "GRANT_SOURCES",
    "ModuleGrant",
    "ModuleState",
    "ModuleStatus",
    "TenantEntitlements",
]
