"""
Stripe checkout, webhook and cancellation tests
"""
import asyncio
import hashlib
import hmac
import json
import time
import pytest
import stripe
from unittest.mock import MagicMock
from scriptgenius.core.config import settings
from scriptgenius.core.plans import PlanName, resolve_plan
from scriptgenius.schemas.subscription import SubscriptionStatus
from scriptgenius.services.payment_gateway import (
    map_stripe_status,
    payment_gateway,
    period_end_from_object,
    plan_from_object,
    subscription_id_from_invoice,
)
from scriptgenius.services.subscription_store import subscription_store

WEBHOOK_URL = "/api/v1/payments/webhook"
HEADERS = {"X-Test-User": "buyer"}


def signed(event, secret="whsec_test_secret", timestamp=None):
    """Body and Stripe-Signature header for an event, signed like Stripe does."""
    payload = json.dumps(event)
    timestamp = timestamp or int(time.time())
    digest = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256
    ).hexdigest()
    return payload, {"stripe-signature": f"t={timestamp},v1={digest}", "content-type": "application/json"}


def event(event_type, obj):
    return {"id": "evt_test", "type": event_type, "data": {"object": obj}}


def checkout_completed(user_id="buyer", subscription_id="sub_123", plan="Pro", payment_status="paid"):
    return event("checkout.session.completed", {
        "id": "cs_test",
        "object": "checkout.session",
        "client_reference_id": user_id,
        "subscription": subscription_id,
        "customer": "cus_123",
        "payment_status": payment_status,
        "metadata": {"user_id": user_id, "plan": plan}
    })


def current(user_id):
    return asyncio.run(subscription_store.get_current_subscription(user_id))


@pytest.mark.parametrize("stripe_status,expected", [
    ("active", SubscriptionStatus.ACTIVE),
    ("trialing", SubscriptionStatus.TRIALING),
    ("canceled", SubscriptionStatus.CANCELLED),
    ("unpaid", SubscriptionStatus.CANCELLED),
    ("past_due", SubscriptionStatus.PENDING),
    ("incomplete", SubscriptionStatus.PENDING),
    ("paused", SubscriptionStatus.PENDING),
    (None, SubscriptionStatus.PENDING),
])
def test_map_stripe_status(stripe_status, expected):
    assert map_stripe_status(stripe_status) == expected


def test_plan_and_period_from_subscription_items(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_PRICE_PRO", "price_pro")
    subscription = {
        "id": "sub_1",
        "metadata": {},
        "items": {"data": [{"price": {"id": "price_pro"}, "current_period_end": 1893456000}]}
    }
    assert plan_from_object(subscription) == PlanName.PRO
    assert period_end_from_object(subscription).year == 2030
    assert plan_from_object({"metadata": {"plan": "starter"}}) == PlanName.STARTER
    assert plan_from_object({"metadata": {}}) is None


def test_subscription_id_from_invoice():
    assert subscription_id_from_invoice({"subscription": "sub_a"}) == "sub_a"
    assert subscription_id_from_invoice(
        {"parent": {"subscription_details": {"subscription": "sub_b"}}}
    ) == "sub_b"
    assert subscription_id_from_invoice({}) is None


def test_checkout_completed_activates_plan(client):
    payload, headers = signed(checkout_completed(plan="Pro"))

    response = client.post(WEBHOOK_URL, content=payload, headers=headers)

    assert response.status_code == 200
    assert response.json() == {"received": True}
    record = current("buyer")
    assert record.plan_name == PlanName.PRO
    assert record.status == SubscriptionStatus.ACTIVE
    assert record.gateway_subscription_id == "sub_123"
    assert record.gateway_customer_id == "cus_123"

    limits = client.get("/api/v1/subscription/limits", headers=HEADERS).json()
    assert limits["total"] == 50
    assert limits["limit_type"] == "daily"


def test_unpaid_checkout_does_not_activate(client, db):
    payload, headers = signed(checkout_completed(payment_status="unpaid"))

    assert client.post(WEBHOOK_URL, content=payload, headers=headers).status_code == 200
    assert asyncio.run(db.gateway_subscriptions.count_documents({})) == 0


def test_invalid_signature_is_rejected_without_mutation(client, db):
    payload, headers = signed(checkout_completed(), secret="whsec_wrong")

    response = client.post(WEBHOOK_URL, content=payload, headers=headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"
    assert asyncio.run(db.subscriptions.count_documents({})) == 0
    assert asyncio.run(db.gateway_subscriptions.count_documents({})) == 0
    assert asyncio.run(db.subscription_events.count_documents({})) == 0


def test_stale_or_missing_signature_is_rejected(client, db):
    payload, headers = signed(checkout_completed(), timestamp=int(time.time()) - 3600)
    assert client.post(WEBHOOK_URL, content=payload, headers=headers).status_code == 400

    missing = client.post(WEBHOOK_URL, content=payload, headers={"content-type": "application/json"})
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Missing signature"
    assert asyncio.run(db.gateway_subscriptions.count_documents({})) == 0


def test_missing_webhook_secret_returns_503(client, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", None)
    payload, headers = signed(checkout_completed())

    response = client.post(WEBHOOK_URL, content=payload, headers=headers)
    assert response.status_code == 503


def test_subscription_deleted_downgrades_to_free(client):
    payload, headers = signed(checkout_completed(plan="Starter"))
    client.post(WEBHOOK_URL, content=payload, headers=headers)

    payload, headers = signed(event("customer.subscription.deleted", {
        "id": "sub_123",
        "object": "subscription",
        "status": "canceled",
        "metadata": {"user_id": "buyer", "plan": "Starter"}
    }))
    assert client.post(WEBHOOK_URL, content=payload, headers=headers).status_code == 200

    record = current("buyer")
    assert record.plan_name == PlanName.FREE
    assert record.status == SubscriptionStatus.CANCELLED

    limits = client.get("/api/v1/subscription/limits", headers=HEADERS).json()
    assert (limits["total"], limits["limit_type"]) == (5, "total")


def test_payment_failed_marks_pending(client):
    payload, headers = signed(checkout_completed(plan="Pro"))
    client.post(WEBHOOK_URL, content=payload, headers=headers)

    payload, headers = signed(event("invoice.payment_failed", {
        "id": "in_1",
        "object": "invoice",
        "subscription": "sub_123"
    }))
    assert client.post(WEBHOOK_URL, content=payload, headers=headers).status_code == 200

    record = current("buyer")
    assert record.status == SubscriptionStatus.PENDING
    assert record.effective_plan().name == PlanName.FREE


def test_subscription_updated_from_metadata(client):
    payload, headers = signed(event("customer.subscription.updated", {
        "id": "sub_meta",
        "object": "subscription",
        "status": "trialing",
        "current_period_end": 1893456000,
        "metadata": {"user_id": "trial-user", "plan": "Pro"}
    }))
    assert client.post(WEBHOOK_URL, content=payload, headers=headers).status_code == 200

    record = current("trial-user")
    assert record.plan_name == PlanName.PRO
    assert record.status == SubscriptionStatus.TRIALING
    assert record.current_period_end.year == 2030


def test_invoice_paid_reactivates(client):
    payload, headers = signed(checkout_completed(plan="Starter"))
    client.post(WEBHOOK_URL, content=payload, headers=headers)
    asyncio.run(subscription_store.set_subscription_status("sub_123", SubscriptionStatus.PENDING))

    payload, headers = signed(event("invoice.paid", {
        "id": "in_2",
        "object": "invoice",
        "parent": {"subscription_details": {"subscription": "sub_123"}}
    }))
    assert client.post(WEBHOOK_URL, content=payload, headers=headers).status_code == 200

    record = current("buyer")
    assert record.status == SubscriptionStatus.ACTIVE
    assert record.plan_name == PlanName.STARTER


def test_unhandled_event_is_acknowledged(client, db):
    payload, headers = signed(event("customer.created", {"id": "cus_1"}))
    assert client.post(WEBHOOK_URL, content=payload, headers=headers).json() == {"received": True}
    assert asyncio.run(db.subscription_events.count_documents({})) == 0


def test_create_subscription(client, monkeypatch):
    calls = {}

    def create(user_id, plan, success_url, cancel_url):
        calls.update(user_id=user_id, plan=plan, success_url=success_url)
        return {"id": "cs_new", "url": "https://checkout.stripe.com/c/cs_new"}

    monkeypatch.setattr(payment_gateway, "create_checkout_session", create)

    response = client.post("/api/v1/payments/create-subscription", json={"plan": "pro"}, headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {"url": "https://checkout.stripe.com/c/cs_new", "sessionId": "cs_new"}
    assert calls["user_id"] == "buyer"
    assert calls["plan"].name == PlanName.PRO
    assert "{CHECKOUT_SESSION_ID}" in calls["success_url"]

    history = client.get("/api/v1/subscription/history", headers=HEADERS).json()
    assert history[0]["event"] == "checkout.created"
    assert history[0]["reference"] == "cs_new"


@pytest.mark.parametrize("plan", ["Free", "enterprise"])
def test_create_subscription_rejects_non_paid_plans(client, plan):
    response = client.post("/api/v1/payments/create-subscription", json={"plan": plan}, headers=HEADERS)
    assert response.status_code == 400


def test_create_subscription_without_stripe_key(client, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", None)
    response = client.post("/api/v1/payments/create-subscription", json={"plan": "Starter"}, headers=HEADERS)
    assert response.status_code == 503
    assert response.json()["detail"] == "Payments is not configured"


def test_checkout_session_parameters(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(settings, "STRIPE_PRICE_STARTER", "price_starter")
    create = MagicMock(return_value={"id": "cs_1", "url": "https://checkout.stripe.com/c/cs_1"})
    monkeypatch.setattr(stripe.checkout.Session, "create", create)

    session = payment_gateway.create_checkout_session(
        "buyer", resolve_plan("Starter"), "https://app/success", "https://app/cancel"
    )

    assert session["id"] == "cs_1"
    kwargs = create.call_args.kwargs
    assert kwargs["mode"] == "subscription"
    assert kwargs["line_items"] == [{"price": "price_starter", "quantity": 1}]
    assert kwargs["client_reference_id"] == "buyer"
    assert kwargs["metadata"] == {"user_id": "buyer", "plan": "Starter"}
    assert kwargs["subscription_data"] == {"metadata": {"user_id": "buyer", "plan": "Starter"}}


def test_verify_payment_activates_subscription(client, monkeypatch):
    monkeypatch.setattr(payment_gateway, "retrieve_checkout_session", lambda session_id: {
        "id": session_id,
        "client_reference_id": "buyer",
        "payment_status": "paid",
        "subscription": "sub_verified",
        "customer": "cus_v",
        "metadata": {"user_id": "buyer", "plan": "Pro"}
    })

    response = client.post("/api/v1/payments/verify", json={"sessionId": "cs_1"}, headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["subscription"]["plan_name"] == "Pro"
    assert current("buyer").gateway_subscription_id == "sub_verified"


def test_verify_payment_rejects_unpaid_and_foreign_sessions(client, monkeypatch):
    session = {
        "id": "cs_1",
        "client_reference_id": "someone-else",
        "payment_status": "paid",
        "subscription": "sub_x",
        "metadata": {}
    }
    monkeypatch.setattr(payment_gateway, "retrieve_checkout_session", lambda session_id: session)
    assert client.post("/api/v1/payments/verify", json={"sessionId": "cs_1"}, headers=HEADERS).status_code == 403

    session.update(client_reference_id="buyer", payment_status="unpaid")
    response = client.post("/api/v1/payments/verify", json={"sessionId": "cs_1"}, headers=HEADERS)
    assert response.status_code == 400
    assert response.json()["detail"] == "Payment not completed"


def test_cancel_route(client, monkeypatch):
    cancel = MagicMock()
    monkeypatch.setattr(payment_gateway, "cancel_subscription", cancel)
    asyncio.run(subscription_store.activate_subscription("buyer", "sub_c", PlanName.PRO))

    response = client.post("/api/v1/subscription/cancel", headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["subscription"]["plan_name"] == "Free"
    assert body["subscription"]["status"] == "cancelled"
    cancel.assert_called_once_with("sub_c")


def test_cancel_route_checks_ownership(client, monkeypatch):
    cancel = MagicMock()
    monkeypatch.setattr(payment_gateway, "cancel_subscription", cancel)
    asyncio.run(subscription_store.activate_subscription("owner", "sub_owned", PlanName.PRO))

    foreign = client.post("/api/v1/subscription/cancel", json={"subscriptionId": "sub_owned"}, headers=HEADERS)
    assert foreign.status_code == 403

    unknown = client.post("/api/v1/subscription/cancel", json={"subscriptionId": "sub_nope"}, headers=HEADERS)
    assert unknown.status_code == 404

    nothing = client.post("/api/v1/subscription/cancel", headers=HEADERS)
    assert nothing.status_code == 404
    cancel.assert_not_called()
    assert current("owner").plan_name == PlanName.PRO
