"""
Tenant credit ledger.
"""

from codesolve.platform.billing.credits.ledger import CreditLedger, compute_balance
from codesolve.platform.billing.credits.models import (
    CreditReferenceType,
    CreditSummary,
    CreditTransaction,
    CreditTransactionType,
)

__all__ = [
    "CreditLedger",
    "CreditReferenceType",
    "CreditSummary",
    "CreditTransaction",
    "CreditTransactionType",
    "compute_balance",
]
