# runners_awareness/app/schemas/auth.py
"""
Request and response bodies of the /auth endpoints.

Every response shares the {success, message, ...} envelope; optional
fields are omitted when empty.
"""
from typing import Any, Dict, Literal, Optional

from pydantic import Field, field_validator, model_validator

from runners_awareness.app.schemas.common import (
    EMAIL_PATTERN,
    PHONE_PATTERN,
    CamelModel,
)
from runners_awareness.app.schemas.user import Role, RoleProfile, UserResponse

PASSWORD_MIN_LENGTH = 8


class RegisterRequest(CamelModel):
    email: str = Field(..., max_length=100, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=128)
    first_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    # Optional, assembled from first/last name when missing
    full_name: Optional[str] = Field(None, max_length=100)
    phone_number: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    role: Role = "user"
    profile: Optional[RoleProfile] = None

    @model_validator(mode="before")
    @classmethod
    def default_profile_role(cls, data: Any) -> Any:
        # The profile may omit its tag; it inherits the account role
        if isinstance(data, dict):
            profile = data.get("profile")
            if isinstance(profile, dict) and "role" not in profile:
                data = {**data, "profile": {**profile, "role": data.get("role", "user")}}
        return data

    @model_validator(mode="after")
    def profile_matches_role(self) -> "RegisterRequest":
        if self.profile is not None and self.profile.role != self.role:
            raise ValueError("Profile does not match the selected role.")
        return self


class LoginRequest(CamelModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class GoogleLoginRequest(CamelModel):
    id_token: str = Field(..., min_length=1)


class VerifyEmailRequest(CamelModel):
    token: str = Field(..., min_length=1)


class VerifyPhoneRequest(CamelModel):
    code: str = Field(..., min_length=1, max_length=10)
    # Narrows the lookup when several pending accounts share a code
    email: Optional[str] = None


class ResendVerificationRequest(CamelModel):
    email: str = Field(..., min_length=1)
    type: Literal["email", "phone"]

    @field_validator("type", mode="before")
    @classmethod
    def lowercase_type(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


class ForgotPasswordRequest(CamelModel):
    email: str = Field(..., min_length=1)


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=128)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=128)


class UpdatePhoneRequest(CamelModel):
    phone_number: str = Field(..., pattern=PHONE_PATTERN)


class UpdateProfileRequest(CamelModel):
    """Only the fields present are changed; `profile` is merged into the stored one."""
    first_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    full_name: Optional[str] = Field(None, max_length=100)
    # Checked against the caller's own role variant, not a client-chosen one
    profile: Optional[Dict[str, Any]] = None


class AuthResponse(CamelModel):
    success: bool
    message: str
    token: Optional[str] = None
    # Seconds until the token expires; the client computes expiry from it
    expires_in: Optional[int] = None
    user: Optional[UserResponse] = None
    requires_verification: Optional[bool] = None
    requires_two_factor: Optional[bool] = None
