"""
Billing system exceptions.

Custom exceptions for entitlement, proration, credit and plan-change
operations. Every error carries a machine-readable code, an HTTP status,
context about the failing operation and a recovery hint.
"""

from typing import Any


class BillingError(Exception):
    """
    Base billing system error with enhanced context.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for API responses
        status_code: HTTP status code for this error type
        context: Additional context data about the error
        recovery_hint: Suggested action to resolve the error
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int = 400,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        self.message = message
        self.error_code = error_code or "BILLING_ERROR"
        self.status_code = status_code
        self.context = context or {}
        self.recovery_hint = recovery_hint
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "status_code": self.status_code,
            "context": self.context,
            "recovery_hint": self.recovery_hint,
        }


# ============================================================================
# Catalog errors
# ============================================================================


class PlanNotFoundError(BillingError):
    """Subscription plan not found error."""

    def __init__(self, message: str, plan_id: str | None = None) -> None:
        context = {}
        if plan_id:
            context["plan_id"] = plan_id

        super().__init__(
            message,
            "PLAN_NOT_FOUND",
            status_code=404,
            context=context,
            recovery_hint="Verify the plan slug and ensure the plan exists in the catalog",
        )


class ModuleNotInCatalogError(BillingError):
    """Module id is not part of the module catalog."""

    def __init__(self, message: str, module_id: str) -> None:
        super().__init__(
            message,
            "MODULE_NOT_FOUND",
            status_code=404,
            context={"module_id": module_id},
            recovery_hint="Verify the module id against the module catalog",
        )


class ModuleUnavailableError(BillingError):
    """Module exists in the catalog but cannot be enabled yet."""

    def __init__(self, message: str, module_id: str) -> None:
        super().__init__(
            message,
            "MODULE_UNAVAILABLE",
            status_code=409,
            context={"module_id": module_id},
            recovery_hint="This module is not available yet. Try again once it is released",
        )


# ============================================================================
# Entitlement errors
# ============================================================================


class EntitlementError(BillingError):
    """Entitlement-related errors."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        super().__init__(
            message,
            "ENTITLEMENT_ERROR",
            status_code=400,
            context=context,
            recovery_hint=recovery_hint,
        )


class DependencyUnsatisfiedError(EntitlementError):
    """One or more module dependencies are not enabled."""

    def __init__(self, message: str, module_id: str, missing: list[str]) -> None:
        super().__init__(
            message,
            context={"module_id": module_id, "missing_dependencies": missing},
            recovery_hint=f"Enable the required modules first: {', '.join(missing)}",
        )
        self.error_code = "DEPENDENCY_UNSATISFIED"
        self.status_code = 409
        self.missing = missing


class PlanIneligibleError(EntitlementError):
    """Tenant plan is below the module's minimum plan."""

    def __init__(self, message: str, module_id: str, plan_id: str, min_plan: str) -> None:
        super().__init__(
            message,
            context={"module_id": module_id, "plan_id": plan_id, "min_plan": min_plan},
            recovery_hint=f"Upgrade to the {min_plan} plan or higher to use this module",
        )
        self.error_code = "PLAN_INELIGIBLE"
        self.status_code = 403


class CoreModuleProtectedError(EntitlementError):
    """Core modules cannot be disabled."""

    def __init__(self, message: str, module_id: str) -> None:
        super().__init__(
            message,
            context={"module_id": module_id},
            recovery_hint="Core modules are always active and cannot be disabled",
        )
        self.error_code = "CORE_MODULE_PROTECTED"
        self.status_code = 409


class TenantNotProvisionedError(EntitlementError):
    """Tenant has no entitlement record yet."""

    def __init__(self, message: str, tenant_id: str) -> None:
        super().__init__(
            message,
            context={"tenant_id": tenant_id},
            recovery_hint="Provision the tenant with a plan before managing its modules",
        )
        self.error_code = "TENANT_NOT_PROVISIONED"
        self.status_code = 404


# ============================================================================
# Credit errors
# ============================================================================


class CreditError(BillingError):
    """Credit ledger errors."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        super().__init__(
            message, "CREDIT_ERROR", status_code=400, context=context, recovery_hint=recovery_hint
        )


class InsufficientCreditError(CreditError):
    """Requested credit exceeds the tenant's balance."""

    def __init__(self, message: str, tenant_id: str, requested: Any, available: Any) -> None:
        super().__init__(
            message,
            context={
                "tenant_id": tenant_id,
                "requested": str(requested),
                "available": str(available),
            },
            recovery_hint="Apply at most the available credit balance",
        )
        self.error_code = "INSUFFICIENT_CREDIT"
        self.status_code = 402


class InvalidCreditAmountError(CreditError):
    """Credit amounts must be strictly positive."""

    def __init__(self, message: str, amount: Any) -> None:
        super().__init__(
            message,
            context={"amount": str(amount)},
            recovery_hint="Use an amount greater than zero",
        )
        self.error_code = "INVALID_CREDIT_AMOUNT"
        self.status_code = 422


# ============================================================================
# Proration and plan-change errors
# ============================================================================


class InvalidProrationInputError(BillingError):
    """Malformed subscription period or plan pair."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            "INVALID_PRORATION_INPUT",
            status_code=422,
            context=context,
            recovery_hint="Subscription periods must start before they end and span at least one day",
        )


class PlanChangeError(BillingError):
    """Plan change workflow errors."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        super().__init__(
            message,
            "PLAN_CHANGE_ERROR",
            status_code=400,
            context=context,
            recovery_hint=recovery_hint,
        )


class ChangeAlreadyInProgressError(PlanChangeError):
    """Another plan change for the same tenant is in flight."""

    def __init__(self, message: str, tenant_id: str, workflow_id: str | None = None) -> None:
        context: dict[str, Any] = {"tenant_id": tenant_id}
        if workflow_id:
            context["active_workflow_id"] = workflow_id

        super().__init__(
            message,
            context=context,
            recovery_hint="Finish or discard the pending plan change before starting another",
        )
        self.error_code = "CHANGE_ALREADY_IN_PROGRESS"
        self.status_code = 409


class PaymentDeclinedError(PlanChangeError):
    """Payment gateway refused the charge."""

    def __init__(self, message: str, tenant_id: str, amount: Any = None) -> None:
        context: dict[str, Any] = {"tenant_id": tenant_id}
        if amount is not None:
            context["amount"] = str(amount)

        super().__init__(
            message,
            context=context,
            recovery_hint="Try again with a different payment method",
        )
        self.error_code = "PAYMENT_DECLINED"
        self.status_code = 402


class PlanChangeNotAllowedError(PlanChangeError):
    """Plan change refused by eligibility rules."""

    def __init__(self, message: str, from_plan: str, to_plan: str) -> None:
        super().__init__(
            message,
            context={"from_plan": from_plan, "to_plan": to_plan},
            recovery_hint="Wait until the subscription is old enough or choose an upgrade",
        )
        self.error_code = "PLAN_CHANGE_NOT_ALLOWED"
        self.status_code = 403


class WorkflowStateError(PlanChangeError):
    """Operation is not valid in the workflow's current state."""

    def __init__(self, message: str, current_state: str, operation: str) -> None:
        super().__init__(
            message,
            context={"current_state": current_state, "operation": operation},
            recovery_hint=f"'{operation}' cannot be used while the plan change is in '{current_state}'",
        )
        self.error_code = "INVALID_WORKFLOW_STATE"
        self.status_code = 409


class WorkflowNotFoundError(PlanChangeError):
    """Unknown or already finished plan change workflow."""

    def __init__(self, message: str, workflow_id: str) -> None:
        super().__init__(
            message,
            context={"workflow_id": workflow_id},
            recovery_hint="Start a new plan change",
        )
        self.error_code = "WORKFLOW_NOT_FOUND"
        self.status_code = 404


class BillingConfigurationError(BillingError):
    """Billing configuration error."""

    def __init__(
        self, message: str, config_key: str | None = None, recovery_hint: str | None = None
    ):
        context = {}
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message,
            "CONFIGURATION_ERROR",
            status_code=500,
            context=context,
            recovery_hint=recovery_hint or "Check billing configuration settings",
        )
