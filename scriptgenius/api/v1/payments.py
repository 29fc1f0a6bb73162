from fastapi import APIRouter, HTTPException, Depends, Request
from typing import Any, Dict
from scriptgenius.api.v1.auth import get_current_user_id
from scriptgenius.core.config import settings
from scriptgenius.core.plans import PlanName, parse_plan_name, resolve_plan
from scriptgenius.schemas.payment import (
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    VerifyPaymentRequest,
)
from scriptgenius.schemas.subscription import SubscriptionStatus
from scriptgenius.services.payment_gateway import (
    map_stripe_status,
    payment_gateway,
    period_end_from_object,
    plan_from_object,
    subscription_id_from_invoice,
)
from scriptgenius.services.subscription_store import subscription_store
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

# Used when a completed checkout carries no recognizable plan
DEFAULT_PAID_PLAN = PlanName.STARTER


@router.post("/create-subscription", response_model=CreateSubscriptionResponse)
async def create_subscription(
    request: CreateSubscriptionRequest,
    user_id: str = Depends(get_current_user_id)
):
    """Start a Stripe checkout for a paid plan."""
    plan_name = parse_plan_name(request.plan)
    plan = resolve_plan(plan_name)
    if plan_name is None or not plan.is_paid:
        raise HTTPException(status_code=400, detail="Invalid plan")

    # Use provided URLs or fall back to environment-configured frontend URL
    frontend_url = settings.FRONTEND_URL
    success_url = request.successUrl or f"{frontend_url}/subscription?success=true&session_id={{CHECKOUT_SESSION_ID}}"
    cancel_url = request.cancelUrl or f"{frontend_url}/pricing?canceled=true"

    session = payment_gateway.create_checkout_session(user_id, plan, success_url, cancel_url)
    await subscription_store.record_checkout(user_id, session["id"], plan.name)

    return CreateSubscriptionResponse(url=session["url"], sessionId=session["id"])


@router.post("/verify")
async def verify_payment(
    request: VerifyPaymentRequest,
    user_id: str = Depends(get_current_user_id)
):
    """
    Client-initiated reconciliation after checkout.

    Activates the subscription immediately instead of waiting for the
    webhook; the webhook later applies the same activation again.
    """
    session = payment_gateway.retrieve_checkout_session(request.sessionId)

    owner = session.get("client_reference_id") or (session.get("metadata") or {}).get("user_id")
    if owner != user_id:
        raise HTTPException(status_code=403, detail="Checkout session belongs to another user")

    if session.get("payment_status") != "paid" or not session.get("subscription"):
        logger.info(f"Checkout {request.sessionId} for user {user_id} not paid ({session.get('payment_status')})")
        raise HTTPException(status_code=400, detail="Payment not completed")

    subscription_id = session["subscription"]
    if not isinstance(subscription_id, str):
        subscription_id = subscription_id["id"]

    record = await subscription_store.activate_subscription(
        user_id,
        subscription_id,
        plan_from_object(session) or DEFAULT_PAID_PLAN,
        customer_id=session.get("customer"),
        source="client"
    )
    return {"success": True, "subscription": record}


@router.post("/webhook", include_in_schema=False)
async def stripe_webhook(request: Request):
    """
    Handle Stripe webhook events.

    The signature is verified before anything is written.
    """
    payload = await request.body()
    event = payment_gateway.verify_webhook(payload, request.headers.get("stripe-signature"))

    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}
    logger.info(f"Received webhook event: {event_type}")

    try:
        if event_type == 'checkout.session.completed':
            await handle_checkout_session_completed(obj)

        elif event_type in ['customer.subscription.created', 'customer.subscription.updated']:
            await handle_subscription_updated(obj)

        elif event_type == 'customer.subscription.deleted':
            await handle_subscription_deleted(obj)

        elif event_type in ['invoice.paid', 'invoice.payment_succeeded']:
            await handle_invoice_paid(obj)

        elif event_type == 'invoice.payment_failed':
            await handle_payment_failed(obj)

        else:
            logger.info(f"Ignoring unhandled webhook event type: {event_type}")

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Webhook error processing {event_type}: {e}")
        raise HTTPException(status_code=500, detail="Webhook processing error")

    return {"received": True}


async def handle_checkout_session_completed(session: Dict[str, Any]):
    """Activation: a checkout finished and the subscription exists."""
    user_id = session.get('client_reference_id') or (session.get('metadata') or {}).get('user_id')
    subscription_id = session.get('subscription')

    if not user_id or not subscription_id:
        logger.error("Checkout session without user_id or subscription")
        return
    if session.get('payment_status') not in ('paid', 'no_payment_required'):
        logger.info(f"Checkout for {user_id} completed without payment; waiting for invoice")
        return

    await subscription_store.activate_subscription(
        user_id,
        subscription_id,
        plan_from_object(session) or DEFAULT_PAID_PLAN,
        customer_id=session.get('customer'),
        source="webhook"
    )


async def handle_subscription_updated(subscription: Dict[str, Any]):
    metadata = subscription.get('metadata') or {}
    await subscription_store.set_subscription_status(
        subscription['id'],
        map_stripe_status(subscription.get('status')),
        plan_name=plan_from_object(subscription),
        period_end=period_end_from_object(subscription),
        user_id=metadata.get('user_id')
    )


async def handle_subscription_deleted(subscription: Dict[str, Any]):
    """Cancellation: downgrade to Free."""
    metadata = subscription.get('metadata') or {}
    await subscription_store.set_subscription_status(
        subscription['id'],
        SubscriptionStatus.CANCELLED,
        user_id=metadata.get('user_id')
    )


async def handle_invoice_paid(invoice: Dict[str, Any]):
    """Charge: a billing period was paid."""
    subscription_id = subscription_id_from_invoice(invoice)
    if not subscription_id:
        return
    await subscription_store.set_subscription_status(
        subscription_id,
        SubscriptionStatus.ACTIVE,
        plan_name=plan_from_object(invoice),
        period_end=period_end_from_object(invoice)
    )


async def handle_payment_failed(invoice: Dict[str, Any]):
    subscription_id = subscription_id_from_invoice(invoice)
    if not subscription_id:
        return
    await subscription_store.set_subscription_status(
        subscription_id,
        SubscriptionStatus.PENDING
    )
