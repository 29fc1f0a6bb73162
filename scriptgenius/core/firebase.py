import firebase_admin
from firebase_admin import credentials
from scriptgenius.core.config import settings
import json
import logging
import os

logger = logging.getLogger(__name__)


def _app_options():
    if settings.FIREBASE_STORAGE_BUCKET:
        return {"storageBucket": settings.FIREBASE_STORAGE_BUCKET}
    return None


def init_firebase() -> bool:
    """Initialize Firebase Admin SDK if not already initialized."""
    if firebase_admin._apps:
        return True

    # 1. Try loading from JSON string in environment variable (Best for Cloud)
    if settings.FIREBASE_CREDENTIALS_JSON:
        try:
            creds_dict = json.loads(settings.FIREBASE_CREDENTIALS_JSON)
            cred = credentials.Certificate(creds_dict)
            firebase_admin.initialize_app(cred, _app_options())
            logger.info("Firebase Admin SDK initialized from FIREBASE_CREDENTIALS_JSON")
            return True
        except Exception as e:
            logger.error(f"Failed to initialize Firebase from JSON env var: {e}")

    # 2. Fallback to file path
    firebase_creds_path = settings.FIREBASE_CREDENTIALS_PATH
    possible_paths = [
        firebase_creds_path,
        os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), firebase_creds_path),
        os.path.join(os.getcwd(), firebase_creds_path),
    ]

    for path in possible_paths:
        if os.path.exists(path):
            try:
                cred = credentials.Certificate(path)
                firebase_admin.initialize_app(cred, _app_options())
                logger.info(f"Firebase Admin SDK initialized with: {path}")
                return True
            except Exception as e:
                logger.error(f"Failed to initialize Firebase with {path}: {e}")

    logger.warning(f"Firebase credentials not found. Tried env var and paths: {possible_paths}")
    return False


# Initialize Firebase on module load
firebase_initialized = init_firebase()
