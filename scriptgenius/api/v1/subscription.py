from fastapi import APIRouter, Depends
from typing import List, Optional
from scriptgenius.api.v1.auth import get_current_user_id
from scriptgenius.core.exceptions import AuthorizationError, SubscriptionNotFoundError
from scriptgenius.core.plans import list_plans
from scriptgenius.schemas.subscription import (
    CancelSubscriptionRequest,
    PlanInfo,
    QuotaStatus,
    SubscriptionEvent,
    SubscriptionResponse,
)
from scriptgenius.services.entitlements import entitlement_engine
from scriptgenius.services.payment_gateway import payment_gateway
from scriptgenius.services.subscription_store import subscription_store
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscription", tags=["Subscription"])


@router.get("", response_model=SubscriptionResponse)
async def get_subscription(user_id: str = Depends(get_current_user_id)):
    """Current subscription, its plan and the remaining script quota."""
    record = await subscription_store.get_current_subscription(user_id)
    quota = await entitlement_engine.check_limit(user_id)
    return SubscriptionResponse(
        subscription=record,
        plan=PlanInfo.from_plan(record.plan),
        quota=quota
    )


@router.get("/limits", response_model=QuotaStatus)
async def get_limits(user_id: str = Depends(get_current_user_id)):
    return await entitlement_engine.check_limit(user_id)


@router.get("/plans", response_model=List[PlanInfo])
async def get_plans():
    """Available plans in display order."""
    return [PlanInfo.from_plan(plan) for plan in list_plans()]


@router.get("/history", response_model=List[SubscriptionEvent])
async def get_history(user_id: str = Depends(get_current_user_id)):
    return await subscription_store.get_history(user_id)


@router.post("/cancel")
async def cancel_subscription(
    request: Optional[CancelSubscriptionRequest] = None,
    user_id: str = Depends(get_current_user_id)
):
    """Cancel the user's subscription at Stripe and downgrade to Free."""
    subscription_id = request.subscriptionId if request else None
    if not subscription_id:
        current = await subscription_store.get_current_subscription(user_id)
        subscription_id = current.gateway_subscription_id
    if not subscription_id:
        raise SubscriptionNotFoundError("current")

    existing = await subscription_store.get_gateway_subscription(subscription_id)
    if not existing:
        raise SubscriptionNotFoundError(subscription_id)
    if existing.get("user_id") != user_id:
        raise AuthorizationError("Not authorized to cancel this subscription")

    payment_gateway.cancel_subscription(subscription_id)
    record = await subscription_store.cancel(subscription_id)
    logger.info(f"User {user_id} cancelled subscription {subscription_id}")

    return {"success": True, "subscription": record}
