from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field
from scriptgenius.core.plans import LimitType


class ScriptRecord(BaseModel):
    id: str = Field(alias="_id")
    user_id: str
    prompt_text: str
    generated_text: str
    category: Optional[str] = None
    tags: List[str] = []
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None
    audio_url: Optional[str] = None
    audio_filename: Optional[str] = None

    class Config:
        populate_by_name = True
        json_encoders = {datetime: lambda dt: dt.isoformat()}


class GenerateScriptRequest(BaseModel):
    """Request model for script generation."""
    input: str = Field(..., min_length=1, max_length=500, description="Topic of the script")
    category: Optional[str] = Field(default=None, max_length=100)
    tags: Optional[List[str]] = Field(default=None, max_length=10)


class GenerateScriptResponse(BaseModel):
    script: str
    timestamp: datetime
    request_id: str = Field(alias="requestId")
    script_id: str = Field(alias="scriptId")
    remaining: int
    total: int
    limit_type: LimitType = Field(alias="limitType")

    class Config:
        populate_by_name = True


class UpdateScriptRequest(BaseModel):
    generated_text: Optional[str] = Field(default=None, min_length=1)
    prompt_text: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = None
    tags: Optional[List[str]] = None
