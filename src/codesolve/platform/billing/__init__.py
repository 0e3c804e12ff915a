"""
Billing system module.

Provides tenant billing capabilities including:
- Module and plan catalogs
- Per-tenant module entitlements
- Proration of mid-cycle plan changes
- Tenant credit ledger
- Plan change workflow (review, payment, processing, success)
"""

from codesolve.platform.billing.exceptions import (
    BillingConfigurationError,
    BillingError,
    ChangeAlreadyInProgressError,
    CoreModuleProtectedError,
    CreditError,
    DependencyUnsatisfiedError,
    EntitlementError,
    InsufficientCreditError,
    InvalidCreditAmountError,
    InvalidProrationInputError,
    ModuleNotInCatalogError,
    ModuleUnavailableError,
    PaymentDeclinedError,
    PlanChangeError,
    PlanChangeNotAllowedError,
    PlanIneligibleError,
    PlanNotFoundError,
    TenantNotProvisionedError,
    WorkflowNotFoundError,
    WorkflowStateError,
)

__all__ = [
    "BillingConfigurationError",
    "BillingError",
    "ChangeAlreadyInProgressError",
    "CoreModuleProtectedError",
    "CreditError",
    "DependencyUnsatisfiedError",
    "EntitlementError",
    "InsufficientCreditError",
    "InvalidCreditAmountError",
    "InvalidProrationInputError",
    "ModuleNotInCatalogError",
    "ModuleUnavailableError",
    "PaymentDeclinedError",
    "PlanChangeError",
    "PlanChangeNotAllowedError",
    "PlanIneligibleError",
    "PlanNotFoundError",
    "TenantNotProvisionedError",
    "WorkflowNotFoundError",
    "WorkflowStateError",
]
