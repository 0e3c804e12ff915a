"""
CodeSolve platform services.

Tenant module entitlements, subscription proration, tenant credits and
the plan-change workflow.
"""

__version__ = "1.0.0"
