"""
Billing module configuration
"""

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CurrencyConfig(BaseModel):
    """Currency configuration - Single currency support"""

    model_config = ConfigDict()

    default_currency: str = Field("BRL", description="Default currency code")
    default_locale: str = Field("pt_BR", description="Locale used for display formatting")


class CreditConfig(BaseModel):
    """Tenant credit configuration"""

    model_config = ConfigDict()

    expiry_days: int = Field(365, description="Days before earned credit expires")


class PlanChangeConfig(BaseModel):
    """Plan change configuration"""

    model_config = ConfigDict()

    allow_plan_changes: bool = Field(True, description="Allow subscription plan changes")
    min_days_for_downgrade: int = Field(
        0, description="Days a subscription must exist before downgrades are allowed"
    )
    idle_workflow_ttl_minutes: int = Field(
        60, description="Minutes an unclaimed workflow may sit idle before it is evicted"
    )


class PaymentConfig(BaseModel):
    """Payment gateway configuration"""

    model_config = ConfigDict()

    gateway_url: str = Field("http://localhost:3001/api", description="Billing backend base URL")
    timeout_seconds: float = Field(30.0, description="Gateway request timeout")


class NotificationConfig(BaseModel):
    """Notification configuration"""

    model_config = ConfigDict()

    send_plan_change: bool = Field(True, description="Send plan change notifications")
    send_credits_earned: bool = Field(True, description="Send credits earned notifications")


class BillingConfig(BaseModel):
    """Main billing configuration"""

    model_config = ConfigDict()

    currency: CurrencyConfig = Field(default_factory=CurrencyConfig)
    credits: CreditConfig = Field(default_factory=CreditConfig)
    plan_changes: PlanChangeConfig = Field(default_factory=PlanChangeConfig)
    payment: PaymentConfig = Field(default_factory=PaymentConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)

    # Audit
    audit_log_enabled: bool = Field(True, description="Enable billing audit logging")

    @classmethod
    def from_env(cls) -> "BillingConfig":
        """Create configuration from settings"""

        config_dict: dict[str, Any] = {}

        from codesolve.platform.settings import settings

        billing = settings.billing

        config_dict["currency"] = CurrencyConfig(
            default_currency=billing.default_currency,
            default_locale=billing.default_locale,
        )
        config_dict["credits"] = CreditConfig(expiry_days=billing.credit_expiry_days)
        config_dict["plan_changes"] = PlanChangeConfig(
            allow_plan_changes=billing.allow_plan_changes,
            min_days_for_downgrade=billing.min_days_for_downgrade,
            idle_workflow_ttl_minutes=billing.idle_workflow_ttl_minutes,
        )
        config_dict["payment"] = PaymentConfig(
            gateway_url=billing.payment_gateway_url,
            timeout_seconds=billing.payment_gateway_timeout,
        )
        config_dict["notifications"] = NotificationConfig(
            send_plan_change=billing.send_plan_change_notifications,
            send_credits_earned=billing.send_plan_change_notifications,
        )

        config_dict["audit_log_enabled"] = os.getenv("BILLING_AUDIT_LOG", "true").lower() == "true"

        return cls(**config_dict)


# Global configuration instance
_billing_config: BillingConfig | None = None


def get_billing_config() -> BillingConfig:
    """Get the global billing configuration instance"""
    global _billing_config
    if _billing_config is None:
        _billing_config = BillingConfig.from_env()
    return _billing_config


def set_billing_config(config: BillingConfig | None) -> None:
    """Set the global billing configuration instance"""
    global _billing_config
    _billing_config = config
