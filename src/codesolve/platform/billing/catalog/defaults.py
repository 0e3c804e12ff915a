"""
Default module and plan catalogs shipped with the platform.

Modules sold for free inside plans carry no add-on pricing, so plan gating
applies to them. Add-on prices are monthly, in BRL.
"""

from decimal import Decimal
from functools import lru_cache

from codesolve.platform.billing.catalog.models import (
    ModuleCategory,
    ModuleDefinition,
    ModulePricing,
    Plan,
    PlanRequirement,
)
from codesolve.platform.billing.catalog.service import ModuleCatalog, PlanCatalog

PAID_PLANS = frozenset({"professional", "business", "enterprise"})
UPPER_PLANS = frozenset({"business", "enterprise"})


def _core(module_id: str, name: str, category: ModuleCategory) -> ModuleDefinition:
    return ModuleDefinition(id=module_id, name=name, category=category, is_core=True)


DEFAULT_MODULES: tuple[ModuleDefinition, ...] = (
    _core("dashboard", "Dashboard", ModuleCategory.ESSENTIAL),
    _core("config", "Configurações", ModuleCategory.ESSENTIAL),
    _core("users", "Usuários", ModuleCategory.ESSENTIAL),
    _core("billing", "Cobrança", ModuleCategory.BILLING),
    _core("support", "Suporte", ModuleCategory.SUPPORT),
    ModuleDefinition(
        id="chat",
        name="Chat",
        description="Atendimento via WhatsApp",
        category=ModuleCategory.COMMUNICATION,
        plan_requirement=PlanRequirement(
            min_plan="starter",
            included_in_plans=frozenset({"starter", "professional", "business", "enterprise"}),
        ),
    ),
    ModuleDefinition(
        id="calendar",
        name="Calendário",
        description="Agendamentos e lembretes",
        category=ModuleCategory.COMMUNICATION,
        pricing=ModulePricing(monthly_price=Decimal("29.90"), trial_days=14),
        plan_requirement=PlanRequirement(min_plan="professional", included_in_plans=PAID_PLANS),
    ),
    ModuleDefinition(
        id="automations",
        name="Automações",
        description="Fluxos automáticos de atendimento",
        category=ModuleCategory.AI,
        pricing=ModulePricing(monthly_price=Decimal("49.90"), trial_days=7),
        plan_requirement=PlanRequirement(min_plan="professional", included_in_plans=PAID_PLANS),
    ),
    ModuleDefinition(
        id="ai-consumption",
        name="Consumo IA",
        description="Acompanhamento de consumo de IA",
        category=ModuleCategory.AI,
        plan_requirement=PlanRequirement(min_plan="professional", included_in_plans=PAID_PLANS),
    ),
    ModuleDefinition(
        id="ai-config",
        name="Config IA",
        description="Configuração dos agentes de IA",
        category=ModuleCategory.AI,
        plan_requirement=PlanRequirement(min_plan="professional", included_in_plans=PAID_PLANS),
    ),
    ModuleDefinition(
        id="instagram",
        name="Instagram",
        description="Mensagens diretas do Instagram",
        category=ModuleCategory.SOCIAL,
        dependencies=frozenset({"chat"}),
        pricing=ModulePricing(
            monthly_price=Decimal("49.90"),
            per_unit=True,
            unit_name="conta",
            max_units=10,
            trial_days=14,
        ),
        plan_requirement=PlanRequirement(min_plan="professional", included_in_plans=UPPER_PLANS),
    ),
    ModuleDefinition(
        id="facebook",
        name="Facebook",
        description="Messenger das páginas do Facebook",
        category=ModuleCategory.SOCIAL,
        dependencies=frozenset({"chat"}),
        pricing=ModulePricing(
            monthly_price=Decimal("49.90"),
            per_unit=True,
            unit_name="página",
            max_units=10,
            trial_days=14,
        ),
        plan_requirement=PlanRequirement(min_plan="professional", included_in_plans=UPPER_PLANS),
    ),
    ModuleDefinition(
        id="twitter",
        name="Twitter/X",
        category=ModuleCategory.SOCIAL,
        is_available=False,
        dependencies=frozenset({"chat"}),
        pricing=ModulePricing(
            monthly_price=Decimal("39.90"),
            per_unit=True,
            unit_name="conta",
            max_units=5,
            trial_days=14,
        ),
        plan_requirement=PlanRequirement(
            min_plan="business", included_in_plans=frozenset({"enterprise"})
        ),
    ),
    ModuleDefinition(
        id="linkedin",
        name="LinkedIn",
        category=ModuleCategory.SOCIAL,
        is_available=False,
        dependencies=frozenset({"chat"}),
        pricing=ModulePricing(
            monthly_price=Decimal("59.90"),
            per_unit=True,
            unit_name="perfil",
            max_units=5,
            trial_days=7,
        ),
        plan_requirement=PlanRequirement(
            min_plan="business", included_in_plans=frozenset({"enterprise"})
        ),
    ),
    ModuleDefinition(
        id="youtube",
        name="YouTube",
        category=ModuleCategory.SOCIAL,
        is_available=False,
        dependencies=frozenset({"chat"}),
        pricing=ModulePricing(
            monthly_price=Decimal("49.90"),
            per_unit=True,
            unit_name="canal",
            max_units=3,
            trial_days=7,
        ),
        plan_requirement=PlanRequirement(
            min_plan="business", included_in_plans=frozenset({"enterprise"})
        ),
    ),
    ModuleDefinition(
        id="reports",
        name="Relatórios",
        description="Relatórios gerenciais",
        category=ModuleCategory.ANALYTICS,
        pricing=ModulePricing(monthly_price=Decimal("79.90"), trial_days=14),
        plan_requirement=PlanRequirement(min_plan="business", included_in_plans=UPPER_PLANS),
    ),
)


DEFAULT_PLANS: tuple[Plan, ...] = (
    Plan(
        id="plan-free",
        slug="free",
        name="Free",
        description="Para começar a testar",
        sort_order=0,
        base_price=Decimal("0"),
        modules=("chat",),
    ),
    Plan(
        id="plan-starter",
        slug="starter",
        name="Starter",
        description="Ideal para pequenos negócios",
        sort_order=1,
        base_price=Decimal("97.00"),
        modules=("chat", "ai-consumption", "calendar"),
    ),
    Plan(
        id="plan-professional",
        slug="professional",
        name="Professional",
        description="Para negócios em crescimento",
        sort_order=2,
        base_price=Decimal("197.00"),
        modules=("chat", "ai-consumption", "ai-config", "calendar", "automations", "instagram"),
    ),
    Plan(
        id="plan-business",
        slug="business",
        name="Business",
        description="Para empresas estabelecidas",
        sort_order=3,
        base_price=Decimal("397.00"),
        modules=(
            "chat",
            "ai-consumption",
            "ai-config",
            "calendar",
            "automations",
            "instagram",
            "facebook",
            "twitter",
            "reports",
        ),
    ),
    Plan(
        id="plan-enterprise",
        slug="enterprise",
        name="Enterprise",
        description="Solução completa e personalizada",
        sort_order=4,
        # Priced on request
        base_price=Decimal("0"),
        modules=(
            "chat",
            "ai-consumption",
            "ai-config",
            "calendar",
            "automations",
            "instagram",
            "facebook",
            "twitter",
            "linkedin",
            "youtube",
            "reports",
            "billing",
            "support",
        ),
    ),
)


@lru_cache(maxsize=1)
def get_module_catalog() -> ModuleCatalog:
    """Default module catalog."""
    return ModuleCatalog(DEFAULT_MODULES)


@lru_cache(maxsize=1)
def get_plan_catalog() -> PlanCatalog:
    """Default plan catalog."""
    return PlanCatalog(DEFAULT_PLANS)
