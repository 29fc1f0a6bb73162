from typing import List, Optional, Tuple
from scriptgenius.ai.script_chain import script_chain
from scriptgenius.core.exceptions import ScriptLimitReachedError, ScriptNotFoundError
from scriptgenius.core.plans import LimitType
from scriptgenius.schemas.script import ScriptRecord
from scriptgenius.schemas.subscription import QuotaStatus
from scriptgenius.services.entitlements import entitlement_engine
from scriptgenius.services.script_service import script_service
import logging

logger = logging.getLogger(__name__)


def limit_reached_message(status: QuotaStatus) -> str:
    if status.limit_type == LimitType.DAILY:
        return (
            f"You have reached your daily limit of {status.total} scripts. "
            f"Your quota resets at midnight."
        )
    return (
        f"You have used all {status.total} scripts included in the "
        f"{status.plan_name.value} plan. Upgrade to keep generating."
    )


class ScriptGenerationService:
    """Quota-checked script generation: reserve, generate, persist."""

    def __init__(self):
        self.chain = script_chain
        self.entitlements = entitlement_engine
        self.scripts = script_service

    async def generate(
        self,
        user_id: str,
        topic: str,
        category: Optional[str] = None,
        tags: Optional[List[str]] = None
    ) -> Tuple[ScriptRecord, QuotaStatus]:
        """
        Generate and store a script for the user.

        One unit of quota is reserved before the model is called and handed
        back if generation or persistence fails, so only stored scripts are
        ever charged.
        """
        reservation = await self.entitlements.reserve(user_id)
        if not reservation.granted:
            status = reservation.status
            raise ScriptLimitReachedError(
                limit_reached_message(status),
                status.limit_type.value,
                status.total
            )

        try:
            text = await self.chain.generate(topic, category=category, tags=tags)
            record = await self.scripts.create_script(
                user_id,
                prompt_text=topic,
                generated_text=text,
                category=category,
                tags=tags
            )
        except Exception:
            await self.entitlements.release(reservation)
            raise

        logger.info(
            f"Generated script {record.id} for user {user_id} "
            f"({reservation.status.remaining}/{reservation.status.total} remaining)"
        )
        return record, reservation.status

    async def regenerate(self, user_id: str, script_id: str) -> ScriptRecord:
        """Rewrite an existing script from its stored prompt. Does not consume quota."""
        existing = await self.scripts.get_script(script_id, user_id)
        if not existing:
            raise ScriptNotFoundError(script_id)

        text = await self.chain.generate(
            existing.prompt_text,
            category=existing.category,
            tags=existing.tags
        )
        updated = await self.scripts.update_script(script_id, user_id, {"generated_text": text})
        if not updated:
            raise ScriptNotFoundError(script_id)
        logger.info(f"Regenerated script {script_id} for user {user_id}")
        return updated


script_generation_service = ScriptGenerationService()
