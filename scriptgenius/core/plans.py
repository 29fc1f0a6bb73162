from enum import Enum
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from scriptgenius.core.config import settings


class PlanName(str, Enum):
    FREE = "Free"
    STARTER = "Starter"
    PRO = "Pro"


class LimitType(str, Enum):
    TOTAL = "total"  # never replenished
    DAILY = "daily"  # replenished every local calendar day


@dataclass(frozen=True)
class Plan:
    """A subscription plan and the script quota it grants."""
    name: PlanName
    limit: int
    limit_type: LimitType
    features: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def price_id(self) -> Optional[str]:
        """Stripe price id for paid plans, read from settings."""
        if self.name == PlanName.STARTER:
            return settings.STRIPE_PRICE_STARTER
        if self.name == PlanName.PRO:
            return settings.STRIPE_PRICE_PRO
        return None

    @property
    def is_paid(self) -> bool:
        return self.name != PlanName.FREE


PLANS: Dict[PlanName, Plan] = {
    PlanName.FREE: Plan(
        name=PlanName.FREE,
        limit=5,
        limit_type=LimitType.TOTAL,
        features=(
            "5 scripts in total",
            "Text-to-speech for every script",
            "Basic templates",
        ),
    ),
    PlanName.STARTER: Plan(
        name=PlanName.STARTER,
        limit=10,
        limit_type=LimitType.DAILY,
        features=(
            "10 scripts per day",
            "5 themes",
            "24/7 email support",
            "Access to basic templates",
        ),
    ),
    PlanName.PRO: Plan(
        name=PlanName.PRO,
        limit=50,
        limit_type=LimitType.DAILY,
        features=(
            "50 scripts per day",
            "All themes",
            "Priority support",
            "Custom branding",
            "API access",
        ),
    ),
}

FREE_PLAN = PLANS[PlanName.FREE]


def parse_plan_name(plan_name: Optional[str]) -> Optional[PlanName]:
    """
    Map a stored or client-supplied plan string onto PlanName.

    Matching is case-insensitive and accepts the legacy ``plan_<name>`` ids.
    Returns None for anything that is not a known plan.
    """
    if isinstance(plan_name, PlanName):
        return plan_name
    if not plan_name or not isinstance(plan_name, str):
        return None

    key = plan_name.strip().lower()
    if key.startswith("plan_"):
        key = key[len("plan_"):]

    for name in PlanName:
        if name.value.lower() == key:
            return name
    return None


def resolve_plan(plan_name: Optional[str]) -> Plan:
    """Resolve a plan by name. Unknown or missing names resolve to the Free plan."""
    name = parse_plan_name(plan_name)
    if name is None:
        return FREE_PLAN
    return PLANS[name]


def list_plans() -> List[Plan]:
    """All plans in display order."""
    return [PLANS[name] for name in PlanName]


def plan_for_price(price_id: Optional[str]) -> Optional[Plan]:
    """Find the paid plan billed with the given Stripe price id."""
    if not price_id:
        return None
    for plan in PLANS.values():
        if plan.price_id and plan.price_id == price_id:
            return plan
    return None
