from fastapi import APIRouter, Depends, HTTPException
from typing import List
from datetime import datetime
from scriptgenius.api.v1.auth import get_current_user_id
from scriptgenius.api.v1.dependencies import enforce_rate_limit
from scriptgenius.core.exceptions import ScriptNotFoundError
from scriptgenius.schemas.script import (
    GenerateScriptRequest,
    GenerateScriptResponse,
    ScriptRecord,
    UpdateScriptRequest,
)
from scriptgenius.services.script_generation import script_generation_service
from scriptgenius.services.script_service import script_service
import logging
import secrets

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scripts", tags=["Scripts"])


@router.post(
    "/generate",
    response_model=GenerateScriptResponse,
    dependencies=[Depends(enforce_rate_limit)]
)
async def generate_script(
    request: GenerateScriptRequest,
    user_id: str = Depends(get_current_user_id)
):
    """
    Generate a short-form video script about the given topic.

    Consumes one script from the user's plan quota. Rejected with 403 once
    the plan's total or daily limit is reached.
    """
    topic = request.input.strip()
    if not topic:
        raise HTTPException(
            status_code=400,
            detail="Invalid input. Please provide a valid text prompt."
        )

    record, quota = await script_generation_service.generate(
        user_id,
        topic,
        category=request.category,
        tags=request.tags
    )

    return GenerateScriptResponse(
        script=record.generated_text,
        timestamp=datetime.utcnow(),
        request_id=secrets.token_hex(4),
        script_id=record.id,
        remaining=quota.remaining,
        total=quota.total,
        limit_type=quota.limit_type
    )


@router.get("/", response_model=List[ScriptRecord], response_model_by_alias=True)
async def list_scripts(user_id: str = Depends(get_current_user_id)):
    """Get all scripts for the current user, newest first."""
    return await script_service.list_scripts(user_id)


@router.get("/{script_id}", response_model=ScriptRecord, response_model_by_alias=True)
async def get_script(
    script_id: str,
    user_id: str = Depends(get_current_user_id)
):
    script = await script_service.get_script(script_id, user_id)
    if not script:
        raise ScriptNotFoundError(script_id)
    return script


@router.patch("/{script_id}", response_model=ScriptRecord, response_model_by_alias=True)
async def update_script(
    script_id: str,
    update: UpdateScriptRequest,
    user_id: str = Depends(get_current_user_id)
):
    """Edit a script's text, prompt, category or tags."""
    fields = update.model_dump(exclude_unset=True, exclude_none=True)
    if not fields:
        raise HTTPException(status_code=400, detail="Nothing to update")

    script = await script_service.update_script(script_id, user_id, fields)
    if not script:
        raise ScriptNotFoundError(script_id)
    return script


@router.post(
    "/{script_id}/regenerate",
    response_model=ScriptRecord,
    response_model_by_alias=True,
    dependencies=[Depends(enforce_rate_limit)]
)
async def regenerate_script(
    script_id: str,
    user_id: str = Depends(get_current_user_id)
):
    """Write a fresh version of an existing script from its original prompt."""
    return await script_generation_service.regenerate(user_id, script_id)


@router.delete("/{script_id}")
async def delete_script(
    script_id: str,
    user_id: str = Depends(get_current_user_id)
):
    deleted = await script_service.delete_script(script_id, user_id)
    if not deleted:
        raise ScriptNotFoundError(script_id)
    return {"status": "success"}
