# runners_awareness/app/api/endpoints/two_factor.py
"""
TOTP two-factor endpoints.

setup / enable / disable change the caller's own account and need a bearer
token; verify is the second login step and status is public.
"""
from fastapi import APIRouter, Depends, Request

from runners_awareness.app.api.deps import get_auth_service, get_current_user, require_same_account
from runners_awareness.app.api.errors import run_operation
from runners_awareness.app.core.config import settings
from runners_awareness.app.core.rate_limit import limiter
from runners_awareness.app.models.user import User
from runners_awareness.app.schemas.auth import AuthResponse
from runners_awareness.app.schemas.common import MessageResponse
from runners_awareness.app.schemas.two_factor import (
    TwoFactorCodeRequest,
    TwoFactorSetupRequest,
    TwoFactorSetupResponse,
    TwoFactorStatusResponse,
)
from runners_awareness.app.services.auth_service import AuthService

router = APIRouter()


@router.post("/setup", response_model=TwoFactorSetupResponse, response_model_exclude_none=True)
async def setup(
        body: TwoFactorSetupRequest,
        current_user: User = Depends(get_current_user),
        service: AuthService = Depends(get_auth_service),
):
    require_same_account(current_user, body.email)
    return await run_operation(service.setup_two_factor(body), "An error occurred during 2FA setup.")


@router.post("/enable", response_model=MessageResponse)
@limiter.limit(settings.RATE_LIMIT_TWO_FACTOR)
async def enable(
        request: Request,
        body: TwoFactorCodeRequest,
        current_user: User = Depends(get_current_user),
        service: AuthService = Depends(get_auth_service),
):
    require_same_account(current_user, body.email)
    return await run_operation(service.enable_two_factor(body), "An error occurred while enabling 2FA.")


@router.post("/verify", response_model=AuthResponse, response_model_exclude_none=True)
@limiter.limit(settings.RATE_LIMIT_TWO_FACTOR)
async def verify(request: Request, body: TwoFactorCodeRequest, service: AuthService = Depends(get_auth_service)):
    return await run_operation(service.verify_two_factor(body), "An error occurred during 2FA verification.")


@router.post("/disable", response_model=MessageResponse)
@limiter.limit(settings.RATE_LIMIT_TWO_FACTOR)
async def disable(
        request: Request,
        body: TwoFactorCodeRequest,
        current_user: User = Depends(get_current_user),
        service: AuthService = Depends(get_auth_service),
):
    require_same_account(current_user, body.email)
    return await run_operation(service.disable_two_factor(body), "An error occurred while disabling 2FA.")


@router.get("/status/{email}", response_model=TwoFactorStatusResponse)
async def status(email: str, service: AuthService = Depends(get_auth_service)):
    return await run_operation(service.two_factor_status(email), "An error occurred while getting 2FA status.")
