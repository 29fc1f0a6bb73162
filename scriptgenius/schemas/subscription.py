from enum import Enum
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field
from scriptgenius.core.plans import FREE_PLAN, LimitType, Plan, PlanName, resolve_plan


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIALING = "trialing"
    CANCELLED = "cancelled"
    PENDING = "pending"


ENTITLED_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)


class SubscriptionRecord(BaseModel):
    """The canonical subscription record of a user."""
    user_id: str
    plan_name: PlanName = PlanName.FREE
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    gateway_subscription_id: Optional[str] = None
    gateway_customer_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @property
    def plan(self) -> Plan:
        return resolve_plan(self.plan_name)

    def effective_plan(self) -> Plan:
        """The plan that governs quota: paid plans only count while entitled."""
        if self.status in ENTITLED_STATUSES:
            return self.plan
        return FREE_PLAN


class SubscriptionEvent(BaseModel):
    """One entry of the append-only subscription history."""
    user_id: str
    subscription_id: Optional[str] = None
    event: str
    status: Optional[SubscriptionStatus] = None
    plan_name: Optional[PlanName] = None
    source: str = "system"
    reference: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class PlanInfo(BaseModel):
    name: PlanName
    limit: int
    limit_type: LimitType
    features: List[str]

    @classmethod
    def from_plan(cls, plan: Plan) -> "PlanInfo":
        return cls(
            name=plan.name,
            limit=plan.limit,
            limit_type=plan.limit_type,
            features=list(plan.features)
        )


class QuotaStatus(BaseModel):
    """Result of an entitlement check."""
    can_generate: bool
    remaining: int = Field(ge=0)
    total: int
    limit_type: LimitType
    plan_name: PlanName = PlanName.FREE
    window: Optional[str] = None
    resets_at: Optional[datetime] = None


class SubscriptionResponse(BaseModel):
    subscription: SubscriptionRecord
    plan: PlanInfo
    quota: QuotaStatus


class CancelSubscriptionRequest(BaseModel):
    subscriptionId: Optional[str] = None
