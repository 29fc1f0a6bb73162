from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # MongoDB Configuration
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB_NAME: str = "scriptgenius"

    # OpenRouter Configuration (OpenAI-compatible API)
    OPENROUTER_API_KEY: Optional[str] = None
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"

    # Script Model Configuration
    LLM_MODEL: str = "google/gemini-2.0-flash-001"
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOKENS: int = 1024

    # ElevenLabs Configuration
    ELEVENLABS_API_KEY: Optional[str] = None
    ELEVENLABS_BASE_URL: str = "https://api.elevenlabs.io/v1"
    ELEVENLABS_MODEL_ID: str = "eleven_monolingual_v1"
    ELEVENLABS_DEFAULT_VOICE_ID: str = "9BWtsMINqrJLrRacOk9x"
    ELEVENLABS_STABILITY: float = 0.5
    ELEVENLABS_SIMILARITY_BOOST: float = 0.5
    ELEVENLABS_TIMEOUT: float = 60.0

    # Firebase Configuration
    FIREBASE_CREDENTIALS_JSON: Optional[str] = None
    FIREBASE_CREDENTIALS_PATH: str = "scriptgenius-firebase-credentials.json"
    FIREBASE_STORAGE_BUCKET: Optional[str] = None

    # Stripe Configuration
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_PRICE_STARTER: Optional[str] = None
    STRIPE_PRICE_PRO: Optional[str] = None

    # Quota Configuration (IANA zone name; daily windows follow its calendar days)
    TIMEZONE: Optional[str] = None

    # Rate Limiting (requests per window, per client IP)
    GENERATE_RATE_LIMIT: int = 10
    GENERATE_RATE_WINDOW_SECONDS: int = 60

    # API Configuration
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "ScriptGenius"

    # Frontend Configuration
    FRONTEND_URL: str = "https://scriptgenius.vercel.app"  # Override with production URL in env

    # Testing Configuration
    TEST_MODE: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra env variables


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
