# runners_awareness/app/models/user.py
import uuid

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    Uuid,
)

from runners_awareness.app.db.base import Base
from runners_awareness.app.utils.time import utcnow


class User(Base):
    """
    Authentication record of a platform user.

    Secret material (password hash, TOTP secret, backup codes, verification
    tokens) never leaves the server; responses are built from UserResponse.
    """
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "NOT two_factor_enabled OR two_factor_secret IS NOT NULL",
            name="ck_users_two_factor_secret_present",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(100), unique=True, index=True, nullable=False)

    first_name = Column(String(50), nullable=False, default="")
    last_name = Column(String(50), nullable=False, default="")
    full_name = Column(String(100), nullable=True)
    phone_number = Column(String(20), nullable=True, index=True)

    # NULL only for accounts provisioned through Google sign-in
    hashed_password = Column(String(255), nullable=True)

    role = Column(String(20), nullable=False, default="user")
    # Role-specific profile variant (see schemas.user.RoleProfile)
    role_details = Column(JSON, nullable=True)

    auth_provider = Column(String(20), nullable=False, default="local")
    is_active = Column(Boolean, nullable=False, default=True)

    # --- Email verification ---
    email_verified = Column(Boolean, nullable=False, default=False)
    email_verification_token = Column(String(128), nullable=True, index=True)
    email_verification_expiry = Column(DateTime(timezone=True), nullable=True)

    # --- Phone verification ---
    phone_verified = Column(Boolean, nullable=False, default=False)
    phone_verification_code = Column(String(10), nullable=True, index=True)
    phone_verification_expiry = Column(DateTime(timezone=True), nullable=True)

    # --- Password reset ---
    password_reset_token = Column(String(128), nullable=True, index=True)
    password_reset_expiry = Column(DateTime(timezone=True), nullable=True)
    password_reset_count = Column(Integer, nullable=False, default=0)
    last_password_reset_at = Column(DateTime(timezone=True), nullable=True)

    # --- Two-factor authentication ---
    two_factor_enabled = Column(Boolean, nullable=False, default=False)
    # Base32 TOTP secret
    two_factor_secret = Column(String(64), nullable=True)
    # JSON array of unused single-use backup codes
    two_factor_backup_codes = Column(Text, nullable=True)
    two_factor_setup_date = Column(DateTime(timezone=True), nullable=True)
    # Last accepted TOTP time step; codes at or before it are replays
    two_factor_last_used_step = Column(BigInteger, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.username

    @property
    def requires_verification(self) -> bool:
        # Phone verification only applies once a number is on file
        phone_pending = bool(self.phone_number) and not self.phone_verified
        return (not self.email_verified) or phone_pending

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
