from scriptgenius.db.mongo import get_database
from scriptgenius.schemas.script import ScriptRecord
from bson import ObjectId
from datetime import datetime
from typing import Any, Dict, List, Optional

import logging

logger = logging.getLogger(__name__)


def _to_record(doc: Dict[str, Any]) -> ScriptRecord:
    doc["_id"] = str(doc["_id"])
    return ScriptRecord(**doc)


class ScriptService:
    def __init__(self):
        self.collection_name = "scripts"

    async def get_collection(self):
        db = await get_database()
        return db[self.collection_name]

    async def create_script(
        self,
        user_id: str,
        prompt_text: str,
        generated_text: str,
        category: Optional[str] = None,
        tags: Optional[List[str]] = None
    ) -> ScriptRecord:
        collection = await self.get_collection()
        script = {
            "user_id": user_id,
            "prompt_text": prompt_text,
            "generated_text": generated_text,
            "category": category,
            "tags": tags or [],
            "created_at": datetime.utcnow(),
            "updated_at": None,
            "audio_url": None,
            "audio_filename": None
        }
        result = await collection.insert_one(script)
        script["_id"] = result.inserted_id
        logger.info(f"Created script {result.inserted_id} for user {user_id}")
        return _to_record(script)

    async def list_scripts(self, user_id: str) -> List[ScriptRecord]:
        collection = await self.get_collection()
        cursor = collection.find({"user_id": user_id}).sort("created_at", -1)
        scripts = []
        async for doc in cursor:
            scripts.append(_to_record(doc))
        return scripts

    async def get_script(self, script_id: str, user_id: str) -> Optional[ScriptRecord]:
        if not ObjectId.is_valid(script_id):
            return None
        collection = await self.get_collection()
        doc = await collection.find_one({"_id": ObjectId(script_id), "user_id": user_id})
        if doc:
            return _to_record(doc)
        logger.warning(f"Script {script_id} not found for user {user_id}")
        return None

    async def update_script(
        self,
        script_id: str,
        user_id: str,
        fields: Dict[str, Any]
    ) -> Optional[ScriptRecord]:
        """Apply field updates to a user's script and return the updated record."""
        if not ObjectId.is_valid(script_id):
            return None
        collection = await self.get_collection()
        result = await collection.update_one(
            {"_id": ObjectId(script_id), "user_id": user_id},
            {"$set": {**fields, "updated_at": datetime.utcnow()}}
        )
        if result.matched_count == 0:
            return None
        return await self.get_script(script_id, user_id)

    async def attach_audio(
        self,
        script_id: str,
        user_id: str,
        audio_url: str,
        audio_filename: str
    ) -> Optional[ScriptRecord]:
        return await self.update_script(
            script_id,
            user_id,
            {"audio_url": audio_url, "audio_filename": audio_filename}
        )

    async def delete_script(self, script_id: str, user_id: str) -> bool:
        if not ObjectId.is_valid(script_id):
            return False
        collection = await self.get_collection()
        result = await collection.delete_one({"_id": ObjectId(script_id), "user_id": user_id})
        return result.deleted_count > 0

    async def count_user_scripts(self, user_id: str, since: Optional[datetime] = None) -> int:
        """Count a user's scripts, optionally only those created at or after `since`."""
        collection = await self.get_collection()
        query: Dict[str, Any] = {"user_id": user_id}
        if since is not None:
            query["created_at"] = {"$gte": since}
        return await collection.count_documents(query)

script_service = ScriptService()
