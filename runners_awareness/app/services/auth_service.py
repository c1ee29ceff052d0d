# runners_awareness/app/services/auth_service.py
"""
Authentication and two-factor workflow.

Each public coroutine is one state transition of a user credential:

    register → (verify_email | verify_phone | resend_verification)*
    login / google_login → session token (or a 2FA challenge)
    setup_two_factor → enable_two_factor → verify_two_factor … → disable_two_factor

Business-rule failures raise AuthError; the endpoint layer turns them into
400 responses. Anything else propagates to the endpoint boundary, which
logs it and answers 500.

Consumption of single-use material (verification tokens, reset tokens,
backup codes, TOTP time steps) is a compare-and-swap UPDATE: the row only
changes if it still holds the value that was checked, so two racing
requests cannot both succeed.
"""
import logging
import re
import secrets
import uuid
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional

from fastapi import BackgroundTasks
from pydantic import ValidationError
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from runners_awareness.app.core.config import settings
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
from runners_awareness.app.schemas.two_factor import (
    TwoFactorCodeRequest,
    TwoFactorSetupRequest,
    TwoFactorSetupResponse,
    TwoFactorStatusResponse,
)
from runners_awareness.app.schemas.user import ADMIN_ROLES, PROFILE_ROLES, ROLE_PROFILE_ADAPTER, UserResponse
from runners_awareness.app.security import hashing, jwt, tokens, totp
from runners_awareness.app.security.google import GoogleIdentity
from runners_awareness.app.services.notifications import NotificationService, enqueue
from runners_awareness.app.utils.time import is_expired, utcnow

logger = logging.getLogger(__name__)

GoogleVerifier = Callable[[str], Awaitable[Optional[GoogleIdentity]]]

# Same text for unknown email, inactive account and wrong password
INVALID_CREDENTIALS = "Invalid email or password."
# Same text whichever 2FA path failed
INVALID_TWO_FACTOR_CODE = "Invalid two-factor authentication code."
USER_NOT_FOUND = "User not found."
FORGOT_PASSWORD_MESSAGE = "If an account with this email exists, a password reset link has been sent."


class AuthError(Exception):
    """A business-rule failure; the message is safe to show to the caller."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthService:
    def __init__(
        self,
        db: AsyncSession,
        notifier: NotificationService,
        background_tasks: BackgroundTasks,
        google_verifier: GoogleVerifier,
    ):
        self.db = db
        self.notifier = notifier
        self.background_tasks = background_tasks
        self.google_verifier = google_verifier

    # ─────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────

    async def _get_user_by_email(self, email: str, active_only: bool = True) -> Optional[User]:
        query = select(User).where(User.email == email)
        if active_only:
            query = query.where(User.is_active == True)  # noqa: E712
        result = await self.db.execute(query)
        return result.scalars().first()

    async def _require_user(self, email: str) -> User:
        user = await self._get_user_by_email(email)
        if not user:
            raise AuthError(USER_NOT_FOUND)
        return user

    async def _unique_username(self, email: str) -> str:
        base = re.sub(r"[^A-Za-z0-9._-]", "", email.split("@")[0])[:40] or "user"
        candidate = base
        for _ in range(5):
            result = await self.db.execute(select(User.id).where(User.username == candidate))
            if result.first() is None:
                return candidate
            candidate = f"{base}-{secrets.token_hex(2)}"
        return f"{base}-{secrets.token_hex(4)}"

    async def _compare_and_set(self, user: User, *criteria: Any, **values: Any) -> bool:
        """
        UPDATE the user row only if `criteria` still hold.

        Commits on success, rolls back otherwise. Either way `user` is
        reloaded afterwards: a rollback expires it, and an expired attribute
        cannot be lazy-loaded on an AsyncSession.
        """
        stmt = (
            update(User)
            .where(User.id == user.id, *criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            await self.db.rollback()
            await self.db.refresh(user)
            return False
        await self.db.commit()
        await self.db.refresh(user)
        return True

    def _notify(self, send: Callable[..., Awaitable[Any]], *args: Any) -> None:
        enqueue(self.background_tasks, send, *args)

    def _session_response(self, user: User, message: str) -> AuthResponse:
        return AuthResponse(
            success=True,
            message=message,
            token=jwt.create_user_token(user),
            expires_in=settings.access_token_expire_seconds,
            user=UserResponse.from_user(user),
            requires_verification=user.requires_verification,
        )

    def _two_factor_challenge(self, user: User) -> AuthResponse:
        return AuthResponse(
            success=True,
            message="Two-factor authentication required.",
            requires_two_factor=True,
            requires_verification=user.requires_verification,
        )

    # ─────────────────────────────────────────────────────────────
    # Registration & login
    # ─────────────────────────────────────────────────────────────

    async def register(self, request: RegisterRequest) -> AuthResponse:
        if request.role in ADMIN_ROLES:
            raise AuthError("Admin roles cannot be created through regular registration.")

        if await self._get_user_by_email(request.email, active_only=False):
            raise AuthError("User with this email already exists.")

        now = utcnow()
        first_name = (request.first_name or "").strip()
        last_name = (request.last_name or "").strip()
        full_name = request.full_name or f"{first_name} {last_name}".strip() or None

        user = User(
            id=uuid.uuid4(),
            username=await self._unique_username(request.email),
            email=request.email,
            first_name=first_name,
            last_name=last_name,
            full_name=full_name,
            phone_number=request.phone_number,
            hashed_password=hashing.get_password_hash(request.password),
            role=request.role,
            role_details=request.profile.model_dump(by_alias=True, exclude_none=True) if request.profile else None,
            auth_provider="local",
            is_active=True,
            email_verified=False,
            email_verification_token=tokens.generate_verification_token(),
            email_verification_expiry=now + timedelta(hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS),
            phone_verified=False,
            created_at=now,
        )
        if request.phone_number:
            user.phone_verification_code = tokens.generate_verification_code()
            user.phone_verification_expiry = now + timedelta(minutes=settings.PHONE_VERIFICATION_EXPIRE_MINUTES)

        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            # Lost a race against a concurrent registration of the same email
            await self.db.rollback()
            raise AuthError("User with this email already exists.")

        logger.info("Registered user %s (role=%s)", user.id, user.role)

        self._notify(self.notifier.send_verification_email, user.email, user.display_name, user.email_verification_token)
        if user.phone_verification_code:
            self._notify(self.notifier.send_verification_sms, user.phone_number, user.phone_verification_code)

        return AuthResponse(
            success=True,
            message="Registration successful. Please check your email and phone for verification codes.",
            user=UserResponse.from_user(user),
            requires_verification=True,
        )

    async def login(self, request: LoginRequest, admin_only: bool = False) -> AuthResponse:
        user = await self._get_user_by_email(request.email, active_only=False)

        if user is None:
            # Burn the same bcrypt time as a real check
            hashing.verify_password(request.password, hashing.DUMMY_PASSWORD_HASH)
            password_ok = False
        else:
            password_ok = hashing.verify_password(request.password, user.hashed_password)

        if user is None or not user.is_active or not password_ok:
            logger.warning("Failed login attempt")
            raise AuthError(INVALID_CREDENTIALS)

        if admin_only and user.role not in ADMIN_ROLES:
            logger.warning("Non-admin user %s attempted admin login", user.id)
            raise AuthError("Access denied. Admin privileges required.")

        if user.two_factor_enabled:
            return self._two_factor_challenge(user)

        user.last_login_at = utcnow()
        await self.db.commit()

        logger.info("User %s logged in", user.id)
        return self._session_response(user, "Admin login successful." if admin_only else "Login successful.")

    async def google_login(self, request: GoogleLoginRequest) -> AuthResponse:
        identity = await self.google_verifier(request.id_token)
        if identity is None:
            raise AuthError("Invalid Google token.")

        now = utcnow()
        user = await self._get_user_by_email(identity.email, active_only=False)

        if user is not None and not user.is_active:
            raise AuthError("Account is deactivated. Please contact support.")

        if user is None:
            # Google accounts arrive with a verified email
            user = User(
                id=uuid.uuid4(),
                username=await self._unique_username(identity.email),
                email=identity.email,
                first_name=(identity.given_name or "")[:50],
                last_name=(identity.family_name or "")[:50],
                full_name=identity.name,
                hashed_password=None,
                role="user",
                auth_provider="google",
                is_active=True,
                email_verified=True,
                phone_verified=False,
                created_at=now,
            )
            self.db.add(user)
            logger.info("Provisioned user %s from Google sign-in", user.id)
        elif not user.email_verified:
            user.email_verified = True
            user.email_verification_token = None
            user.email_verification_expiry = None

        if user.two_factor_enabled:
            await self.db.commit()
            return self._two_factor_challenge(user)

        user.last_login_at = now
        await self.db.commit()
        return self._session_response(user, "Google login successful.")

    # ─────────────────────────────────────────────────────────────
    # Email / phone verification
    # ─────────────────────────────────────────────────────────────

    async def verify_email(self, request: VerifyEmailRequest) -> AuthResponse:
        result = await self.db.execute(
            select(User).where(User.email_verification_token == request.token)
        )
        user = result.scalars().first()

        if user is None:
            raise AuthError("Invalid verification token.")

        if is_expired(user.email_verification_expiry):
            raise AuthError("Verification token has expired.")

        consumed = await self._compare_and_set(
            user,
            User.email_verification_token == request.token,
            email_verified=True,
            email_verification_token=None,
            email_verification_expiry=None,
        )
        if not consumed:
            raise AuthError("Invalid verification token.")

        self._notify(self.notifier.send_welcome_email, user.email, user.display_name)

        return AuthResponse(
            success=True,
            message="Email verified successfully.",
            user=UserResponse.from_user(user),
        )

    async def verify_phone(self, request: VerifyPhoneRequest) -> AuthResponse:
        query = select(User).where(User.phone_verification_code == request.code)
        if request.email:
            query = query.where(User.email == request.email)
        result = await self.db.execute(query.limit(2))
        matches = result.scalars().all()

        # Six digits collide across accounts; an ambiguous code needs the email
        if len(matches) != 1:
            raise AuthError("Invalid verification code.")
        user = matches[0]

        if is_expired(user.phone_verification_expiry):
            raise AuthError("Verification code has expired.")

        consumed = await self._compare_and_set(
            user,
            User.phone_verification_code == request.code,
            phone_verified=True,
            phone_verification_code=None,
            phone_verification_expiry=None,
        )
        if not consumed:
            raise AuthError("Invalid verification code.")

        self._notify(self.notifier.send_welcome_sms, user.phone_number, user.display_name)

        return AuthResponse(
            success=True,
            message="Phone verified successfully.",
            user=UserResponse.from_user(user),
        )

    async def resend_verification(self, request: ResendVerificationRequest) -> MessageResponse:
        user = await self._require_user(request.email)
        now = utcnow()

        if request.type == "email" and not user.email_verified:
            user.email_verification_token = tokens.generate_verification_token()
            user.email_verification_expiry = now + timedelta(hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS)
            await self.db.commit()
            self._notify(self.notifier.send_verification_email, user.email, user.display_name, user.email_verification_token)
            return MessageResponse(success=True, message="Verification email sent successfully.")

        if request.type == "phone" and user.phone_number and not user.phone_verified:
            user.phone_verification_code = tokens.generate_verification_code()
            user.phone_verification_expiry = now + timedelta(minutes=settings.PHONE_VERIFICATION_EXPIRE_MINUTES)
            await self.db.commit()
            self._notify(self.notifier.send_verification_sms, user.phone_number, user.phone_verification_code)
            return MessageResponse(success=True, message="Verification SMS sent successfully.")

        raise AuthError("Invalid verification type or already verified.")

    # ─────────────────────────────────────────────────────────────
    # Password management
    # ─────────────────────────────────────────────────────────────

    async def forgot_password(self, request: ForgotPasswordRequest) -> MessageResponse:
        user = await self._get_user_by_email(request.email)

        # Identical answer either way; existence is not disclosed
        if user is not None:
            now = utcnow()
            user.password_reset_token = tokens.generate_verification_token()
            user.password_reset_expiry = now + timedelta(hours=settings.PASSWORD_RESET_EXPIRE_HOURS)
            user.password_reset_count = (user.password_reset_count or 0) + 1
            user.last_password_reset_at = now
            await self.db.commit()
            self._notify(self.notifier.send_password_reset_email, user.email, user.display_name, user.password_reset_token)

        return MessageResponse(success=True, message=FORGOT_PASSWORD_MESSAGE)

    async def reset_password(self, request: ResetPasswordRequest) -> MessageResponse:
        result = await self.db.execute(
            select(User).where(
                User.password_reset_token == request.token,
                User.is_active == True,  # noqa: E712
            )
        )
        user = result.scalars().first()

        if user is None:
            raise AuthError("Invalid password reset token.")

        if is_expired(user.password_reset_expiry):
            raise AuthError("Password reset token has expired.")

        consumed = await self._compare_and_set(
            user,
            User.password_reset_token == request.token,
            hashed_password=hashing.get_password_hash(request.new_password),
            password_reset_token=None,
            password_reset_expiry=None,
        )
        if not consumed:
            raise AuthError("Invalid password reset token.")

        logger.info("Password reset for user %s", user.id)
        self._notify(self.notifier.send_password_change_confirmation, user.email, user.display_name)
        return MessageResponse(success=True, message="Password has been reset successfully.")

    async def change_password(self, user: User, request: ChangePasswordRequest) -> MessageResponse:
        if not hashing.verify_password(request.current_password, user.hashed_password):
            raise AuthError("Current password is incorrect.")

        user.hashed_password = hashing.get_password_hash(request.new_password)
        await self.db.commit()

        logger.info("Password changed for user %s", user.id)
        self._notify(self.notifier.send_password_change_confirmation, user.email, user.display_name)
        return MessageResponse(success=True, message="Password changed successfully.")

    # ─────────────────────────────────────────────────────────────
    # Profile
    # ─────────────────────────────────────────────────────────────

    async def update_phone(self, user: User, request: UpdatePhoneRequest) -> AuthResponse:
        result = await self.db.execute(
            select(User.id).where(User.phone_number == request.phone_number, User.id != user.id)
        )
        if result.first() is not None:
            raise AuthError("Phone number is already in use by another account.")

        user.phone_number = request.phone_number
        user.phone_verified = False
        user.phone_verification_code = tokens.generate_verification_code()
        user.phone_verification_expiry = utcnow() + timedelta(minutes=settings.PHONE_VERIFICATION_EXPIRE_MINUTES)
        await self.db.commit()

        self._notify(self.notifier.send_verification_sms, user.phone_number, user.phone_verification_code)
        return AuthResponse(
            success=True,
            message="Phone number updated. Please verify your new phone number.",
            requires_verification=True,
        )

    async def update_profile(self, user: User, request: UpdateProfileRequest) -> AuthResponse:
        if request.first_name is not None:
            user.first_name = request.first_name.strip()
        if request.last_name is not None:
            user.last_name = request.last_name.strip()
        if request.full_name is not None:
            user.full_name = request.full_name.strip() or None

        if request.profile is not None:
            if user.role not in PROFILE_ROLES:
                raise AuthError("Profile fields are not available for this role.")
            # The stored role wins over any tag the caller sent
            merged = {**(user.role_details or {}), **request.profile, "role": user.role}
            try:
                profile = ROLE_PROFILE_ADAPTER.validate_python(merged)
            except ValidationError as exc:
                error = exc.errors()[0]
                field = ".".join(str(part) for part in error["loc"][1:]) or "profile"
                raise AuthError(f"Invalid profile field '{field}': {error['msg']}")
            user.role_details = profile.model_dump(by_alias=True, exclude_none=True)

        await self.db.commit()
        await self.db.refresh(user)

        logger.info("Profile updated for user %s", user.id)
        return AuthResponse(success=True, message="Profile updated successfully.", user=UserResponse.from_user(user))

    def me(self, user: User) -> AuthResponse:
        return AuthResponse(
            success=True,
            message="Current user.",
            user=UserResponse.from_user(user),
            requires_verification=user.requires_verification,
        )

    def verify_token(self, user: User) -> AuthResponse:
        return AuthResponse(success=True, message="Token is valid.", user=UserResponse.from_user(user))

    # ─────────────────────────────────────────────────────────────
    # Two-factor authentication
    # ─────────────────────────────────────────────────────────────

    async def setup_two_factor(self, request: TwoFactorSetupRequest) -> TwoFactorSetupResponse:
        user = await self._require_user(request.email)

        if user.two_factor_enabled:
            raise AuthError("Two-factor authentication is already enabled.")

        secret = totp.generate_totp_secret()
        backup_codes = totp.generate_backup_codes()

        # Stored but not active until enable_two_factor proves the app has it
        user.two_factor_secret = secret
        user.two_factor_backup_codes = backup_codes
        user.two_factor_setup_date = utcnow()
        user.two_factor_last_used_step = None
        await self.db.commit()

        logger.info("2FA setup started for user %s", user.id)
        return TwoFactorSetupResponse(
            success=True,
            message="Two-factor authentication setup successful.",
            qr_code_url=totp.get_totp_uri(secret, user.email),
            qr_code_image=totp.generate_qr_code_base64(secret, user.email),
            secret=secret,
            backup_codes=totp.load_backup_codes(backup_codes),
        )

    async def _accept_totp(self, user: User, code: str, forget_step: bool = False, **values: Any) -> bool:
        """
        Accept `code` once: its time step must be newer than the last accepted one.

        `forget_step` clears the remembered step instead of recording it (the
        secret is going away with this same update).
        """
        step = totp.match_totp_step(user.two_factor_secret, code)
        if step is None:
            return False
        return await self._compare_and_set(
            user,
            User.two_factor_secret == user.two_factor_secret,
            or_(
                User.two_factor_last_used_step.is_(None),
                User.two_factor_last_used_step < step,
            ),
            two_factor_last_used_step=None if forget_step else step,
            **values,
        )

    async def enable_two_factor(self, request: TwoFactorCodeRequest) -> MessageResponse:
        user = await self._require_user(request.email)

        if user.two_factor_enabled:
            raise AuthError("Two-factor authentication is already enabled.")

        if not user.two_factor_secret:
            raise AuthError("Two-factor authentication is not set up.")

        # Backup codes are deliberately not accepted here
        if not await self._accept_totp(user, request.totp, two_factor_enabled=True):
            logger.warning("Rejected 2FA enable code for user %s", user.id)
            raise AuthError(INVALID_TWO_FACTOR_CODE)

        logger.info("2FA enabled for user %s", user.id)
        return MessageResponse(success=True, message="Two-factor authentication enabled successfully.")

    async def verify_two_factor(self, request: TwoFactorCodeRequest) -> AuthResponse:
        user = await self._require_user(request.email)

        if not user.two_factor_enabled:
            raise AuthError("Two-factor authentication is not enabled.")

        if not user.two_factor_secret:
            raise AuthError("Two-factor authentication is not properly configured.")

        now = utcnow()
        stored_codes = user.two_factor_backup_codes

        if totp.validate_backup_code(stored_codes, request.totp):
            accepted = await self._compare_and_set(
                user,
                User.two_factor_backup_codes == stored_codes,
                two_factor_backup_codes=totp.remove_used_backup_code(stored_codes, request.totp),
                last_login_at=now,
            )
            if accepted:
                logger.info("User %s signed in with a backup code", user.id)
        else:
            accepted = await self._accept_totp(user, request.totp, last_login_at=now)

        if not accepted:
            logger.warning("Rejected 2FA code for user %s", user.id)
            raise AuthError(INVALID_TWO_FACTOR_CODE)

        return self._session_response(user, "Two-factor authentication successful.")

    async def disable_two_factor(self, request: TwoFactorCodeRequest) -> MessageResponse:
        user = await self._require_user(request.email)

        if not user.two_factor_enabled:
            raise AuthError("Two-factor authentication is not enabled.")

        accepted = await self._accept_totp(
            user,
            request.totp,
            forget_step=True,
            two_factor_enabled=False,
            two_factor_secret=None,
            two_factor_backup_codes=None,
            two_factor_setup_date=None,
        )
        if not accepted:
            logger.warning("Rejected 2FA disable code for user %s", user.id)
            raise AuthError(INVALID_TWO_FACTOR_CODE)

        logger.info("2FA disabled for user %s", user.id)
        return MessageResponse(success=True, message="Two-factor authentication disabled successfully.")

    async def two_factor_status(self, email: str) -> TwoFactorStatusResponse:
        user = await self._require_user(email)
        return TwoFactorStatusResponse(
            two_factor_enabled=bool(user.two_factor_enabled),
            two_factor_setup_date=user.two_factor_setup_date,
            has_secret=bool(user.two_factor_secret),
        )
