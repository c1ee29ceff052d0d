# runners_awareness/app/api/router.py
from fastapi import APIRouter

from runners_awareness.app.api.endpoints import auth, two_factor

api_router = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(two_factor.router, prefix="/auth/2fa", tags=["2fa"])
