# runners_awareness/app/security/jwt.py
"""
Access token issuing and decoding (HS256 via python-jose).
"""
import uuid
from datetime import timedelta
from typing import Any, Optional

from jose import JWTError, jwt

from runners_awareness.app.core.config import settings
from runners_awareness.app.models.user import User
from runners_awareness.app.utils.time import utcnow


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    now = utcnow()
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
        "iss": settings.JWT_ISSUER,
        "jti": str(uuid.uuid4()),
    })
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_user_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    """Token for a user: id, role and verification flags travel as claims."""
    return create_access_token(
        data={
            "sub": str(user.id),
            "email": user.email,
            "name": user.display_name,
            "role": user.role,
            "email_verified": bool(user.email_verified),
            "phone_verified": bool(user.phone_verified),
        },
        expires_delta=expires_delta,
    )


def decode_access_token(token: str) -> Optional[dict[str, Any]]:
    """Claims of a valid, unexpired token; None otherwise."""
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            issuer=settings.JWT_ISSUER,
        )
    except JWTError:
        return None
