from pydantic import BaseModel
from typing import Optional


class CreateSubscriptionRequest(BaseModel):
    plan: str
    successUrl: Optional[str] = None
    cancelUrl: Optional[str] = None


class CreateSubscriptionResponse(BaseModel):
    url: str
    sessionId: str


class VerifyPaymentRequest(BaseModel):
    sessionId: str
