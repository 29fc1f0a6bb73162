from scriptgenius.core.config import settings
from scriptgenius.core.exceptions import AudioGenerationError, ServiceNotConfiguredError
from scriptgenius.core import firebase
import logging
import secrets
import time

logger = logging.getLogger(__name__)


def make_audio_filename() -> str:
    return f"audio_{int(time.time() * 1000)}_{secrets.token_hex(4)}.mp3"


class AudioStorage:
    """Uploads generated speech to the Firebase Storage bucket."""

    def __init__(self, prefix: str = "audio"):
        self.prefix = prefix

    def _bucket(self):
        if not firebase.firebase_initialized or not settings.FIREBASE_STORAGE_BUCKET:
            logger.error("Firebase Storage is not configured")
            raise ServiceNotConfiguredError("Audio storage")
        from firebase_admin import storage
        return storage.bucket(settings.FIREBASE_STORAGE_BUCKET)

    def upload(self, data: bytes, filename: str) -> str:
        """Store MP3 bytes and return their public download URL."""
        bucket = self._bucket()
        blob = bucket.blob(f"{self.prefix}/{filename}")
        try:
            blob.upload_from_string(data, content_type="audio/mpeg")
            blob.make_public()
        except Exception as e:
            logger.error(f"Failed to upload {filename} to storage: {e}")
            raise AudioGenerationError("Could not store audio") from e
        logger.info(f"Uploaded {filename} ({len(data)} bytes)")
        return blob.public_url


audio_storage = AudioStorage()
