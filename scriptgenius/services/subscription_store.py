from scriptgenius.db.mongo import get_database
from scriptgenius.core.exceptions import SubscriptionNotFoundError
from scriptgenius.core.plans import FREE_PLAN, PlanName, parse_plan_name, resolve_plan
from scriptgenius.schemas.subscription import (
    ENTITLED_STATUSES,
    SubscriptionEvent,
    SubscriptionRecord,
    SubscriptionStatus,
)
from pydantic import ValidationError
from datetime import datetime
from typing import Any, Dict, List, Optional

import logging

logger = logging.getLogger(__name__)


def _parse_record(doc: Dict[str, Any]) -> Optional[SubscriptionRecord]:
    """Build a record from a canonical document, or None if its plan is unknown."""
    plan_name = parse_plan_name(doc.get("plan_name"))
    if plan_name is None:
        return None
    data = {key: value for key, value in doc.items() if key != "_id"}
    data["plan_name"] = plan_name
    try:
        return SubscriptionRecord(**data)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed subscription document for {doc.get('user_id')}: {e}")
        return None


def _record_to_doc(record: SubscriptionRecord) -> Dict[str, Any]:
    doc = record.model_dump()
    doc["plan_name"] = record.plan_name.value
    doc["status"] = record.status.value
    return doc


class SubscriptionStore:
    """
    Canonical per-user subscription records backed by MongoDB.

    ``subscriptions`` holds exactly one document per user id. Every gateway
    subscription a user has owned lives in ``gateway_subscriptions`` and every
    state change is appended to ``subscription_events``.
    """

    def __init__(self):
        self.collection_name = "subscriptions"
        self.gateway_collection_name = "gateway_subscriptions"
        self.events_collection_name = "subscription_events"

    async def get_collection(self):
        db = await get_database()
        return db[self.collection_name]

    async def get_gateway_collection(self):
        db = await get_database()
        return db[self.gateway_collection_name]

    async def get_events_collection(self):
        db = await get_database()
        return db[self.events_collection_name]

    async def get_current_subscription(self, user_id: str) -> SubscriptionRecord:
        """
        Resolve the user's current subscription.

        Order: the user-keyed record when its plan is known, then the newest
        active gateway subscription (backfilled into the user-keyed record),
        then a freshly persisted Free/active default. Storage failures yield an
        in-memory Free default instead of an error.
        """
        try:
            collection = await self.get_collection()
            doc = await collection.find_one({"user_id": user_id})
            if doc:
                record = _parse_record(doc)
                if record:
                    return record

            gateway = await self.get_gateway_collection()
            cursor = gateway.find(
                {"user_id": user_id, "status": SubscriptionStatus.ACTIVE.value}
            ).sort("created_at", -1).limit(1)
            active = await cursor.to_list(length=1)
            if active and parse_plan_name(active[0].get("plan_name")):
                return await self._backfill(user_id, active[0])

            record = SubscriptionRecord(user_id=user_id)
            fields = _record_to_doc(record)
            created_at = fields.pop("created_at")
            fields.pop("user_id")
            await collection.update_one(
                {"user_id": user_id},
                {"$set": fields, "$setOnInsert": {"created_at": created_at}},
                upsert=True
            )
            logger.info(f"Created default {record.plan_name.value} subscription for user {user_id}")
            return record

        except Exception as e:
            logger.error(f"Error resolving subscription for user {user_id}, using Free default: {e}")
            return SubscriptionRecord(user_id=user_id)

    async def _backfill(self, user_id: str, gateway_doc: Dict[str, Any]) -> SubscriptionRecord:
        """Copy an active gateway subscription into the user-keyed record."""
        collection = await self.get_collection()
        now = datetime.utcnow()
        record = SubscriptionRecord(
            user_id=user_id,
            plan_name=parse_plan_name(gateway_doc.get("plan_name")),
            status=SubscriptionStatus.ACTIVE,
            gateway_subscription_id=gateway_doc.get("subscription_id"),
            gateway_customer_id=gateway_doc.get("customer_id"),
            current_period_start=gateway_doc.get("current_period_start"),
            current_period_end=gateway_doc.get("current_period_end"),
            created_at=gateway_doc.get("created_at") or now,
            updated_at=now
        )
        fields = _record_to_doc(record)
        created_at = fields.pop("created_at")
        fields.pop("user_id")
        await collection.update_one(
            {"user_id": user_id},
            {"$set": fields, "$setOnInsert": {"created_at": created_at}},
            upsert=True
        )
        logger.info(
            f"Backfilled subscription {record.gateway_subscription_id} "
            f"({record.plan_name.value}) for user {user_id}"
        )
        return record

    async def get_gateway_subscription(self, subscription_id: str) -> Optional[Dict[str, Any]]:
        gateway = await self.get_gateway_collection()
        doc = await gateway.find_one({"subscription_id": subscription_id})
        if doc:
            doc["_id"] = str(doc["_id"])
        return doc

    async def activate_subscription(
        self,
        user_id: str,
        subscription_id: str,
        plan_name: PlanName,
        customer_id: Optional[str] = None,
        period_end: Optional[datetime] = None,
        source: str = "webhook"
    ) -> SubscriptionRecord:
        """Make a paid gateway subscription the user's current, active subscription."""
        plan = resolve_plan(plan_name)
        now = datetime.utcnow()

        gateway = await self.get_gateway_collection()
        await gateway.update_one(
            {"subscription_id": subscription_id},
            {
                "$set": {
                    "user_id": user_id,
                    "plan_name": plan.name.value,
                    "status": SubscriptionStatus.ACTIVE.value,
                    "customer_id": customer_id,
                    "current_period_start": now,
                    "current_period_end": period_end,
                    "updated_at": now
                },
                "$setOnInsert": {"created_at": now}
            },
            upsert=True
        )

        collection = await self.get_collection()
        await collection.update_one(
            {"user_id": user_id},
            {
                "$set": {
                    "plan_name": plan.name.value,
                    "status": SubscriptionStatus.ACTIVE.value,
                    "gateway_subscription_id": subscription_id,
                    "gateway_customer_id": customer_id,
                    "current_period_start": now,
                    "current_period_end": period_end,
                    "updated_at": now,
                    "cancelled_at": None
                },
                "$setOnInsert": {"created_at": now}
            },
            upsert=True
        )

        await self._record_event(
            user_id,
            subscription_id,
            "subscription.activated",
            SubscriptionStatus.ACTIVE,
            plan.name,
            source
        )
        logger.info(f"Activated {plan.name.value} subscription {subscription_id} for user {user_id}")
        return await self.get_current_subscription(user_id)

    async def set_subscription_status(
        self,
        subscription_id: str,
        status: SubscriptionStatus,
        plan_name: Optional[PlanName] = None,
        period_end: Optional[datetime] = None,
        user_id: Optional[str] = None,
        source: str = "webhook"
    ) -> Optional[SubscriptionRecord]:
        """
        Transition a gateway subscription and mirror it onto the user's record.

        Cancellation forces the Free plan and clears the billing period. A
        change to a subscription that is not the user's current one only
        reaches the user's record when it makes that subscription entitled.
        """
        gateway = await self.get_gateway_collection()
        existing = await gateway.find_one({"subscription_id": subscription_id}) or {}
        owner = existing.get("user_id") or user_id
        if not owner:
            logger.warning(f"Status update for unknown subscription {subscription_id} ignored")
            return None

        if status == SubscriptionStatus.CANCELLED:
            plan = FREE_PLAN
        elif plan_name is not None:
            plan = resolve_plan(plan_name)
        else:
            plan = resolve_plan(existing.get("plan_name"))

        now = datetime.utcnow()
        gateway_fields: Dict[str, Any] = {
            "user_id": owner,
            "status": status.value,
            "plan_name": plan.name.value,
            "updated_at": now
        }
        if status == SubscriptionStatus.CANCELLED:
            gateway_fields["cancelled_at"] = now
        elif period_end is not None:
            gateway_fields["current_period_end"] = period_end
        await gateway.update_one(
            {"subscription_id": subscription_id},
            {"$set": gateway_fields, "$setOnInsert": {"created_at": now}},
            upsert=True
        )

        collection = await self.get_collection()
        canonical = await collection.find_one({"user_id": owner}) or {}
        current_id = canonical.get("gateway_subscription_id")
        is_current = current_id is None or current_id == subscription_id

        if is_current or status in ENTITLED_STATUSES:
            fields: Dict[str, Any] = {
                "status": status.value,
                "plan_name": plan.name.value,
                "gateway_subscription_id": subscription_id,
                "updated_at": now
            }
            if status == SubscriptionStatus.CANCELLED:
                fields.update(
                    current_period_start=None,
                    current_period_end=None,
                    cancelled_at=now
                )
            elif period_end is not None:
                fields["current_period_end"] = period_end
            await collection.update_one(
                {"user_id": owner},
                {"$set": fields, "$setOnInsert": {"created_at": now}},
                upsert=True
            )
        else:
            logger.info(
                f"Subscription {subscription_id} is not current for user {owner}; "
                f"{status.value} recorded on gateway record only"
            )

        await self._record_event(
            owner,
            subscription_id,
            f"subscription.{status.value}",
            status,
            plan.name,
            source
        )
        return await self.get_current_subscription(owner)

    async def cancel(self, subscription_id: str, source: str = "client") -> SubscriptionRecord:
        """Cancel a known gateway subscription and downgrade its owner to Free."""
        existing = await self.get_gateway_subscription(subscription_id)
        if not existing:
            raise SubscriptionNotFoundError(subscription_id)
        return await self.set_subscription_status(
            subscription_id,
            SubscriptionStatus.CANCELLED,
            PlanName.FREE,
            source=source
        )

    async def record_checkout(self, user_id: str, checkout_session_id: str, plan_name: PlanName):
        """Note the start of a checkout; the user's record is created if missing."""
        await self.get_current_subscription(user_id)
        await self._record_event(
            user_id,
            None,
            "checkout.created",
            SubscriptionStatus.PENDING,
            plan_name,
            "client",
            reference=checkout_session_id
        )

    async def get_history(self, user_id: str, limit: int = 50) -> List[SubscriptionEvent]:
        events = await self.get_events_collection()
        cursor = events.find({"user_id": user_id}).sort("created_at", -1).limit(limit)
        history = []
        async for doc in cursor:
            doc.pop("_id", None)
            history.append(SubscriptionEvent(**doc))
        return history

    async def _record_event(
        self,
        user_id: str,
        subscription_id: Optional[str],
        event: str,
        status: Optional[SubscriptionStatus],
        plan_name: Optional[PlanName],
        source: str,
        reference: Optional[str] = None
    ):
        events = await self.get_events_collection()
        await events.insert_one({
            "user_id": user_id,
            "subscription_id": subscription_id,
            "event": event,
            "status": status.value if status else None,
            "plan_name": plan_name.value if plan_name else None,
            "source": source,
            "reference": reference,
            "created_at": datetime.utcnow()
        })

subscription_store = SubscriptionStore()
