from typing import Optional
from scriptgenius.core.config import settings
from scriptgenius.core.exceptions import (
    AudioGenerationError,
    ServiceNotConfiguredError,
    UpstreamAuthError,
    UpstreamRateLimitError,
)
import httpx
import logging

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    """Pull ElevenLabs' ``detail.message`` out of an error body when present."""
    try:
        body = response.json()
    except ValueError:
        return "Failed to generate audio"
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, dict):
        return detail.get("message") or "Failed to generate audio"
    if isinstance(detail, str):
        return detail
    return "Failed to generate audio"


class SpeechService:
    """ElevenLabs text-to-speech client."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport

    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> bytes:
        """Return MP3 bytes for ``text`` spoken by ``voice_id``."""
        if not settings.ELEVENLABS_API_KEY:
            logger.error("ELEVENLABS_API_KEY is not set")
            raise ServiceNotConfiguredError("Audio generation")

        voice = voice_id or settings.ELEVENLABS_DEFAULT_VOICE_ID
        url = f"{settings.ELEVENLABS_BASE_URL}/text-to-speech/{voice}"
        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": settings.ELEVENLABS_API_KEY
        }
        payload = {
            "text": text,
            "model_id": settings.ELEVENLABS_MODEL_ID,
            "voice_settings": {
                "stability": settings.ELEVENLABS_STABILITY,
                "similarity_boost": settings.ELEVENLABS_SIMILARITY_BOOST
            }
        }

        logger.info(f"Requesting speech for {len(text)} characters with voice {voice}")
        try:
            async with httpx.AsyncClient(
                timeout=settings.ELEVENLABS_TIMEOUT,
                transport=self.transport
            ) as client:
                response = await client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"ElevenLabs request failed: {e}")
            raise AudioGenerationError("Speech service unreachable") from e

        if response.status_code == 401:
            logger.error(f"ElevenLabs rejected credentials: {response.text}")
            raise UpstreamAuthError()
        if response.status_code == 429:
            raise UpstreamRateLimitError()
        if response.status_code >= 400:
            message = _error_message(response)
            logger.error(f"ElevenLabs error {response.status_code}: {message}")
            raise AudioGenerationError(message)

        if not response.content:
            raise AudioGenerationError("No audio data received")
        return response.content


speech_service = SpeechService()
