from scriptgenius.db.mongo import get_database
from scriptgenius.core.config import settings
from scriptgenius.core.plans import FREE_PLAN, LimitType, Plan
from scriptgenius.schemas.subscription import QuotaStatus
from scriptgenius.services.script_service import script_service
from scriptgenius.services.subscription_store import subscription_store
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone, tzinfo
from functools import lru_cache
from typing import Callable, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import logging
import os

logger = logging.getLogger(__name__)

TOTAL_WINDOW = "total"


@lru_cache()
def _system_zone() -> tzinfo:
    """The host's zone rules from /etc/localtime, else its current fixed offset."""
    try:
        with open("/etc/localtime", "rb") as f:
            return ZoneInfo.from_file(f, key="localtime")
    except (OSError, ValueError):
        logger.warning("No zone rules for the local timezone; daily windows use a fixed offset")
        return datetime.now().astimezone().tzinfo


def local_zone() -> tzinfo:
    """Zone whose calendar days delimit daily windows: TIMEZONE, then TZ, then the host."""
    name = settings.TIMEZONE or os.environ.get("TZ", "").lstrip(":")
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.error(f"Unknown timezone {name!r}, using the host's local zone")
    return _system_zone()


def local_now() -> datetime:
    """Current time in the local zone."""
    return datetime.now(local_zone())


def _to_utc_naive(dt: datetime) -> datetime:
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass
class Reservation:
    """Outcome of trying to consume one script from the user's quota."""
    user_id: str
    granted: bool
    status: QuotaStatus
    window: Optional[str] = None  # None when nothing was counted
    counted_in_total: bool = False  # a daily reservation also charged to the total window


class EntitlementEngine:
    """
    Script quota enforcement.

    Usage is tracked per counting window in ``script_usage``: ``total`` for
    plans whose limit never replenishes and ``daily:<local date>`` for daily
    plans. A window document is seeded from the user's existing scripts the
    first time it is needed, and consumption is a single conditional
    increment so concurrent requests can never exceed the limit.

    Every granted reservation is charged to ``total``, whatever the plan, so
    the lifetime count stays exact when a paid user falls back to Free.
    """

    def __init__(self, clock: Callable[[], datetime] = local_now):
        self.collection_name = "script_usage"
        self.clock = clock

    async def get_collection(self):
        db = await get_database()
        return db[self.collection_name]

    def _window(self, plan: Plan, now: datetime) -> Tuple[str, Optional[datetime], Optional[datetime]]:
        """Window key, counting start and reset time (both naive UTC) for a plan."""
        if plan.limit_type == LimitType.DAILY:
            # Midnights are built from the calendar date so zone rules pick each one's offset.
            today = now.date()
            start_of_day = datetime.combine(today, time.min, tzinfo=now.tzinfo)
            resets_at = datetime.combine(today + timedelta(days=1), time.min, tzinfo=now.tzinfo)
            return (
                f"daily:{today.isoformat()}",
                _to_utc_naive(start_of_day),
                _to_utc_naive(resets_at)
            )
        return TOTAL_WINDOW, None, None

    @staticmethod
    def _status(plan: Plan, window: Optional[str], used: int, resets_at: Optional[datetime] = None) -> QuotaStatus:
        return QuotaStatus(
            can_generate=used < plan.limit,
            remaining=max(0, plan.limit - used),
            total=plan.limit,
            limit_type=plan.limit_type,
            plan_name=plan.name,
            window=window,
            resets_at=resets_at
        )

    @staticmethod
    def fallback_status() -> QuotaStatus:
        """Free plan limits, used whenever the store cannot be read."""
        return QuotaStatus(
            can_generate=True,
            remaining=FREE_PLAN.limit,
            total=FREE_PLAN.limit,
            limit_type=FREE_PLAN.limit_type,
            plan_name=FREE_PLAN.name
        )

    async def _resolve_window(self, user_id: str):
        record = await subscription_store.get_current_subscription(user_id)
        plan = record.effective_plan()
        window, since, resets_at = self._window(plan, self.clock())
        return plan, window, since, resets_at

    async def check_limit(self, user_id: str) -> QuotaStatus:
        """Report whether the user may generate another script and how many remain."""
        try:
            plan, window, since, resets_at = await self._resolve_window(user_id)
            collection = await self.get_collection()
            usage = await collection.find_one({"user_id": user_id, "window": window})
            if usage is not None:
                used = usage.get("used", 0)
            else:
                used = await script_service.count_user_scripts(user_id, since=since)
        except PyMongoError as e:
            logger.error(f"Error checking script limit for user {user_id}, falling back to Free plan: {e}")
            return self.fallback_status()

        return self._status(plan, window, used, resets_at)

    async def reserve(self, user_id: str) -> Reservation:
        """Atomically consume one script from the user's current window."""
        try:
            plan, window, since, resets_at = await self._resolve_window(user_id)
            collection = await self.get_collection()
            await self._ensure_window(collection, user_id, window, since, resets_at)
            usage = await collection.find_one_and_update(
                {"user_id": user_id, "window": window, "used": {"$lt": plan.limit}},
                {"$inc": {"used": 1}, "$set": {"updated_at": datetime.utcnow()}},
                return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            logger.error(f"Error reserving script quota for user {user_id}, allowing with Free limits: {e}")
            return Reservation(user_id=user_id, granted=True, status=self.fallback_status())

        if usage is None:
            logger.info(f"User {user_id} reached the {plan.name.value} limit ({plan.limit}, {plan.limit_type.value})")
            return Reservation(
                user_id=user_id,
                granted=False,
                status=self._status(plan, window, plan.limit, resets_at)
            )

        counted_in_total = False
        if window != TOTAL_WINDOW:
            counted_in_total = await self._charge_total(collection, user_id)

        return Reservation(
            user_id=user_id,
            granted=True,
            status=self._status(plan, window, usage["used"], resets_at),
            window=window,
            counted_in_total=counted_in_total
        )

    async def _charge_total(self, collection, user_id: str) -> bool:
        """Add a daily-plan reservation to the lifetime window, without a limit."""
        try:
            await self._ensure_window(collection, user_id, TOTAL_WINDOW, None, None)
            await collection.update_one(
                {"user_id": user_id, "window": TOTAL_WINDOW},
                {"$inc": {"used": 1}, "$set": {"updated_at": datetime.utcnow()}}
            )
        except PyMongoError as e:
            logger.error(f"Could not add reservation to the total window for user {user_id}: {e}")
            return False
        return True

    async def release(self, reservation: Reservation):
        """Give back a unit consumed by a generation that did not complete."""
        if not reservation.granted or reservation.window is None:
            return
        windows = [reservation.window]
        if reservation.counted_in_total:
            windows.append(TOTAL_WINDOW)
        try:
            collection = await self.get_collection()
            for window in windows:
                await collection.update_one(
                    {"user_id": reservation.user_id, "window": window, "used": {"$gt": 0}},
                    {"$inc": {"used": -1}, "$set": {"updated_at": datetime.utcnow()}}
                )
            logger.info(f"Released script quota for user {reservation.user_id} ({', '.join(windows)})")
        except PyMongoError as e:
            logger.error(f"Failed to release script quota for user {reservation.user_id}: {e}")

    async def _ensure_window(
        self,
        collection,
        user_id: str,
        window: str,
        since: Optional[datetime],
        resets_at: Optional[datetime]
    ):
        if await collection.find_one({"user_id": user_id, "window": window}, {"_id": 1}):
            return

        used = await script_service.count_user_scripts(user_id, since=since)
        fields = {"used": used, "created_at": datetime.utcnow()}
        if resets_at is not None:
            fields["expires_at"] = resets_at + timedelta(days=1)
        try:
            await collection.update_one(
                {"user_id": user_id, "window": window},
                {"$setOnInsert": fields},
                upsert=True
            )
        except DuplicateKeyError:
            # Another request created the window between the read and the upsert.
            logger.debug(f"Usage window {window} for user {user_id} already created")

entitlement_engine = EntitlementEngine()
