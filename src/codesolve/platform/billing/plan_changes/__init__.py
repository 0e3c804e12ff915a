"""
Plan change workflow.
"""

from codesolve.platform.billing.plan_changes.models import (
    PlanChangeRecord,
    PlanChangeStatus,
    Receipt,
    ReceiptLine,
)
from codesolve.platform.billing.plan_changes.state_machine import (
    PaymentState,
    PlanChangeQuote,
    PlanChangeState,
    ProcessingState,
    ReviewState,
    SuccessState,
    WorkflowError,
    build_quote,
)
from codesolve.platform.billing.plan_changes.service import PlanChangeService
from codesolve.platform.billing.plan_changes.workflow import PlanChangeWorkflow, WorkflowView

__all__ = [
    "PaymentState",
    "PlanChangeQuote",
    "PlanChangeRecord",
    "PlanChangeService",
    "PlanChangeState",
    "PlanChangeStatus",
    "PlanChangeWorkflow",
    "ProcessingState",
    "Receipt",
    "ReceiptLine",
    "ReviewState",
    "SuccessState",
    "WorkflowError",
    "WorkflowView",
    "build_quote",
]
