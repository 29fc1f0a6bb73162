from typing import Optional
from pydantic import BaseModel, Field


class GenerateAudioRequest(BaseModel):
    """Request model for text-to-speech."""
    text: str = Field(..., min_length=1, max_length=5000)
    voice_id: Optional[str] = Field(default=None, alias="voiceId")
    script_id: Optional[str] = Field(default=None, alias="scriptId")

    class Config:
        populate_by_name = True


class GenerateAudioResponse(BaseModel):
    url: str
    audio_url: str = Field(alias="audioUrl")
    filename: str

    class Config:
        populate_by_name = True
