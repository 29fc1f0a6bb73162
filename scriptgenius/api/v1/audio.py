from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from scriptgenius.api.v1.auth import get_current_user_id
from scriptgenius.api.v1.dependencies import enforce_rate_limit
from scriptgenius.ai.speech import speech_service
from scriptgenius.core.exceptions import ScriptNotFoundError
from scriptgenius.schemas.audio import GenerateAudioRequest, GenerateAudioResponse
from scriptgenius.services.audio_storage import audio_storage, make_audio_filename
from scriptgenius.services.script_service import script_service
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/audio", tags=["Audio"])


@router.post(
    "/generate",
    response_model=GenerateAudioResponse,
    dependencies=[Depends(enforce_rate_limit)]
)
async def generate_audio(
    request: GenerateAudioRequest,
    user_id: str = Depends(get_current_user_id)
):
    """
    Convert text to speech and store the MP3.

    When ``scriptId`` is given the audio is attached to that script.
    """
    if request.script_id and not await script_service.get_script(request.script_id, user_id):
        raise ScriptNotFoundError(request.script_id)

    audio = await speech_service.synthesize(request.text, request.voice_id)

    filename = make_audio_filename()
    url = await run_in_threadpool(audio_storage.upload, audio, filename)

    if request.script_id:
        await script_service.attach_audio(request.script_id, user_id, url, filename)
        logger.info(f"Attached {filename} to script {request.script_id}")

    return GenerateAudioResponse(url=url, audio_url=url, filename=filename)
