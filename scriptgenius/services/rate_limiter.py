from scriptgenius.db.mongo import get_database
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError
from datetime import datetime, timedelta
import logging
import time

logger = logging.getLogger(__name__)


class RateLimiter:
    """Fixed-window request counter shared by every process through MongoDB."""

    def __init__(self):
        self.collection_name = "rate_limits"

    async def get_collection(self):
        db = await get_database()
        return db[self.collection_name]

    async def hit(self, key: str, limit: int, window_seconds: int) -> bool:
        """Count one request for ``key``; False once the window's limit is exceeded."""
        window_start = int(time.time() // window_seconds) * window_seconds
        try:
            collection = await self.get_collection()
            doc = await collection.find_one_and_update(
                {"key": key, "window_start": window_start},
                {
                    "$inc": {"count": 1},
                    "$setOnInsert": {
                        "expires_at": datetime.utcnow() + timedelta(seconds=window_seconds)
                    }
                },
                upsert=True,
                return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            logger.error(f"Rate limiter unavailable, allowing request for {key}: {e}")
            return True

        allowed = doc["count"] <= limit
        if not allowed:
            logger.warning(f"Rate limit exceeded for {key} ({doc['count']}/{limit})")
        return allowed

rate_limiter = RateLimiter()
