from scriptgenius.core.config import settings
from scriptgenius.core.exceptions import (
    PaymentGatewayError,
    ServiceNotConfiguredError,
    WebhookSignatureError,
)
from scriptgenius.core.plans import Plan, PlanName, parse_plan_name, plan_for_price
from scriptgenius.schemas.subscription import SubscriptionStatus
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import stripe
import json
import logging

logger = logging.getLogger(__name__)

# Stripe subscription status -> our status
STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "canceled": SubscriptionStatus.CANCELLED,
    "unpaid": SubscriptionStatus.CANCELLED,
    "incomplete_expired": SubscriptionStatus.CANCELLED,
    "incomplete": SubscriptionStatus.PENDING,
    "past_due": SubscriptionStatus.PENDING,
}


def map_stripe_status(stripe_status: Optional[str]) -> SubscriptionStatus:
    return STRIPE_STATUS_MAP.get(stripe_status or "", SubscriptionStatus.PENDING)


def from_timestamp(value: Optional[int]) -> Optional[datetime]:
    """Stripe epoch seconds -> naive UTC datetime."""
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


def plan_from_object(obj: Dict[str, Any]) -> Optional[PlanName]:
    """Work out the plan of a Stripe subscription, invoice or checkout session."""
    metadata = obj.get("metadata") or {}
    plan_name = parse_plan_name(metadata.get("plan"))
    if plan_name:
        return plan_name

    items = (obj.get("items") or {}).get("data") or (obj.get("lines") or {}).get("data") or []
    for item in items:
        price = item.get("price") or (item.get("pricing") or {}).get("price_details") or {}
        price_id = price.get("id") if isinstance(price, dict) else price
        plan = plan_for_price(price_id)
        if plan:
            return plan.name
    return None


def period_end_from_object(obj: Dict[str, Any]) -> Optional[datetime]:
    """Current period end of a Stripe subscription or invoice."""
    if obj.get("current_period_end"):
        return from_timestamp(obj["current_period_end"])
    items = (obj.get("items") or {}).get("data") or (obj.get("lines") or {}).get("data") or []
    for item in items:
        if item.get("current_period_end"):
            return from_timestamp(item["current_period_end"])
        period = item.get("period") or {}
        if period.get("end"):
            return from_timestamp(period["end"])
    return None


def subscription_id_from_invoice(invoice: Dict[str, Any]) -> Optional[str]:
    if invoice.get("subscription"):
        return invoice["subscription"]
    details = ((invoice.get("parent") or {}).get("subscription_details")) or {}
    return details.get("subscription")


def as_dict(obj) -> Dict[str, Any]:
    """Plain dict view of a Stripe API object."""
    if isinstance(obj, dict):
        return obj
    return json.loads(str(obj))


class PaymentGateway:
    """Thin wrapper around the Stripe API."""

    def _ensure_configured(self):
        if not settings.STRIPE_SECRET_KEY:
            logger.error("STRIPE_SECRET_KEY is not set")
            raise ServiceNotConfiguredError("Payments")
        stripe.api_key = settings.STRIPE_SECRET_KEY

    def create_checkout_session(
        self,
        user_id: str,
        plan: Plan,
        success_url: str,
        cancel_url: str
    ):
        self._ensure_configured()
        if not plan.price_id:
            raise ServiceNotConfiguredError(f"Billing for the {plan.name.value} plan")

        metadata = {"user_id": user_id, "plan": plan.name.value}
        try:
            session = stripe.checkout.Session.create(
                payment_method_types=['card'],
                line_items=[
                    {
                        'price': plan.price_id,
                        'quantity': 1,
                    },
                ],
                mode='subscription',
                success_url=success_url,
                cancel_url=cancel_url,
                client_reference_id=user_id,  # Store user_id to identify them in webhook
                metadata=metadata,
                subscription_data={'metadata': metadata}
            )
            return as_dict(session)
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout creation failed for user {user_id}: {e}")
            raise PaymentGatewayError("Could not create checkout session") from e

    def retrieve_checkout_session(self, session_id: str):
        self._ensure_configured()
        try:
            return as_dict(stripe.checkout.Session.retrieve(session_id))
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout lookup failed for {session_id}: {e}")
            raise PaymentGatewayError("Could not verify payment") from e

    def cancel_subscription(self, subscription_id: str):
        self._ensure_configured()
        try:
            return stripe.Subscription.cancel(subscription_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe cancellation failed for {subscription_id}: {e}")
            raise PaymentGatewayError("Could not cancel subscription") from e

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Check the Stripe-Signature HMAC and return the decoded event."""
        if not settings.STRIPE_WEBHOOK_SECRET:
            logger.error("STRIPE_WEBHOOK_SECRET is not set")
            raise ServiceNotConfiguredError("Webhook handling")
        if not signature:
            raise WebhookSignatureError("Missing signature")

        try:
            text = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                text,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
                tolerance=stripe.Webhook.DEFAULT_TOLERANCE
            )
            return json.loads(text)
        except stripe.SignatureVerificationError:
            logger.warning("Rejected webhook with invalid signature")
            raise WebhookSignatureError()
        except ValueError:
            raise WebhookSignatureError("Invalid payload")


payment_gateway = PaymentGateway()
