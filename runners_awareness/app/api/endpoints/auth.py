# runners_awareness/app/api/endpoints/auth.py
import logging

from fastapi import APIRouter, Depends, Request

from runners_awareness.app.api.deps import get_auth_service, get_current_user
from runners_awareness.app.api.errors import run_operation
from runners_awareness.app.core.config import settings
from runners_awareness.app.core.rate_limit import limiter
from runners_awareness.app.models.user import User
from runners_awareness.app.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    GoogleLoginRequest,
    LoginRequest,
    RegisterRequest,
    ResendVerificationRequest,
    ResetPasswordRequest,
    UpdatePhoneRequest,
    UpdateProfileRequest,
    VerifyEmailRequest,
    VerifyPhoneRequest,
)
from runners_awareness.app.schemas.common import MessageResponse
from runners_awareness.app.services.auth_service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/register", response_model=AuthResponse, response_model_exclude_none=True)
@limiter.limit(settings.RATE_LIMIT_REGISTER)
async def register(request: Request, body: RegisterRequest, service: AuthService = Depends(get_auth_service)):
    return await run_operation(service.register(body), "An error occurred during registration.")


@router.post("/login", response_model=AuthResponse, response_model_exclude_none=True)
@limiter.limit(settings.RATE_LIMIT_LOGIN)
async def login(request: Request, body: LoginRequest, service: AuthService = Depends(get_auth_service)):
    return await run_operation(service.login(body), "An error occurred during login.")


@router.post("/admin-login", response_model=AuthResponse, response_model_exclude_none=True)
@limiter.limit(settings.RATE_LIMIT_LOGIN)
async def admin_login(request: Request, body: LoginRequest, service: AuthService = Depends(get_auth_service)):
    return await run_operation(service.login(body, admin_only=True), "An error occurred during login.")


@router.post("/google-login", response_model=AuthResponse, response_model_exclude_none=True)
@limiter.limit(settings.RATE_LIMIT_LOGIN)
async def google_login(request: Request, body: GoogleLoginRequest, service: AuthService = Depends(get_auth_service)):
    return await run_operation(service.google_login(body), "An error occurred during Google login.")


@router.post("/verify-email", response_model=AuthResponse, response_model_exclude_none=True)
@limiter.limit(settings.RATE_LIMIT_VERIFY)
async def verify_email(request: Request, body: VerifyEmailRequest, service: AuthService = Depends(get_auth_service)):
    return await run_operation(service.verify_email(body), "An error occurred during email verification.")


@router.post("/verify-phone", response_model=AuthResponse, response_model_exclude_none=True)
@limiter.limit(settings.RATE_LIMIT_VERIFY)
async def verify_phone(request: Request, body: VerifyPhoneRequest, service: AuthService = Depends(get_auth_service)):
    return await run_operation(service.verify_phone(body), "An error occurred during phone verification.")


@router.post("/resend-verification", response_model=MessageResponse)
@limiter.limit(settings.RATE_LIMIT_VERIFY)
async def resend_verification(
        request: Request,
        body: ResendVerificationRequest,
        service: AuthService = Depends(get_auth_service),
):
    return await run_operation(service.resend_verification(body), "An error occurred while resending verification.")


@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit(settings.RATE_LIMIT_VERIFY)
async def forgot_password(request: Request, body: ForgotPasswordRequest, service: AuthService = Depends(get_auth_service)):
    return await run_operation(service.forgot_password(body), "An error occurred while processing your request.")


@router.post("/reset-password", response_model=MessageResponse)
@limiter.limit(settings.RATE_LIMIT_VERIFY)
async def reset_password(request: Request, body: ResetPasswordRequest, service: AuthService = Depends(get_auth_service)):
    return await run_operation(service.reset_password(body), "An error occurred during password reset.")


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
        body: ChangePasswordRequest,
        current_user: User = Depends(get_current_user),
        service: AuthService = Depends(get_auth_service),
):
    return await run_operation(
        service.change_password(current_user, body), "An error occurred while changing password."
    )


@router.post("/update-phone", response_model=AuthResponse, response_model_exclude_none=True)
async def update_phone(
        body: UpdatePhoneRequest,
        current_user: User = Depends(get_current_user),
        service: AuthService = Depends(get_auth_service),
):
    return await run_operation(
        service.update_phone(current_user, body), "An error occurred while updating phone number."
    )


@router.put("/profile", response_model=AuthResponse, response_model_exclude_none=True)
async def update_profile(
        body: UpdateProfileRequest,
        current_user: User = Depends(get_current_user),
        service: AuthService = Depends(get_auth_service),
):
    return await run_operation(
        service.update_profile(current_user, body), "An error occurred while updating profile."
    )


@router.get("/me", response_model=AuthResponse, response_model_exclude_none=True)
async def me(
        current_user: User = Depends(get_current_user),
        service: AuthService = Depends(get_auth_service),
):
    return service.me(current_user)


@router.api_route("/verify", methods=["GET", "POST"], response_model=AuthResponse, response_model_exclude_none=True)
async def verify_token(
        current_user: User = Depends(get_current_user),
        service: AuthService = Depends(get_auth_service),
):
    return service.verify_token(current_user)


# Tokens are stateless; the client discards its copy
@router.post("/logout", response_model=MessageResponse)
async def logout(current_user: User = Depends(get_current_user)):
    logger.info("User %s logged out", current_user.id)
    return MessageResponse(success=True, message="Logged out successfully.")
