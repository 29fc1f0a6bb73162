from fastapi import APIRouter
from scriptgenius.api.v1 import auth, scripts, audio, subscription, payments

api_router = APIRouter()

# Include all v1 routers
api_router.include_router(auth.router)
api_router.include_router(scripts.router)
api_router.include_router(audio.router)
api_router.include_router(subscription.router)
api_router.include_router(payments.router)
