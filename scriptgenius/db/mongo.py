from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from scriptgenius.core.config import settings
import logging

logger = logging.getLogger(__name__)

class MongoDB:
    client: AsyncIOMotorClient = None
    db = None

    async def connect_to_database(self):
        logger.info("Connecting to MongoDB...")
        try:
            self.client = AsyncIOMotorClient(settings.MONGO_URI)
            self.db = self.client[settings.MONGO_DB_NAME]
            logger.info("Connected to MongoDB.")
        except Exception as e:
            logger.error(f"Could not connect to MongoDB: {e}")
            raise e

    async def ensure_indexes(self):
        """Create the unique keys and TTL indexes the services rely on."""
        db = self.db
        await db.subscriptions.create_index("user_id", unique=True)
        await db.gateway_subscriptions.create_index("subscription_id", unique=True)
        await db.gateway_subscriptions.create_index(
            [("user_id", ASCENDING), ("status", ASCENDING), ("created_at", DESCENDING)]
        )
        await db.subscription_events.create_index(
            [("user_id", ASCENDING), ("created_at", DESCENDING)]
        )
        await db.scripts.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
        await db.script_usage.create_index(
            [("user_id", ASCENDING), ("window", ASCENDING)], unique=True
        )
        await db.script_usage.create_index("expires_at", expireAfterSeconds=0)
        await db.rate_limits.create_index(
            [("key", ASCENDING), ("window_start", ASCENDING)], unique=True
        )
        await db.rate_limits.create_index("expires_at", expireAfterSeconds=0)
        logger.info("MongoDB indexes ensured.")

    async def close_database_connection(self):
        logger.info("Closing MongoDB connection...")
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed.")

mongodb = MongoDB()

async def get_database():
    return mongodb.db
