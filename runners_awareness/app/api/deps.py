# runners_awareness/app/api/deps.py
import uuid

from fastapi import BackgroundTasks, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from runners_awareness.app.core.config import settings
from runners_awareness.app.db.session import get_db
from runners_awareness.app.models.user import User
from runners_awareness.app.security.google import verify_google_id_token
from runners_awareness.app.security.jwt import decode_access_token
from runners_awareness.app.services.auth_service import AuthService, GoogleVerifier
from runners_awareness.app.services.notifications import NotificationService, get_notifier

reusable_oauth2 = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_PREFIX}/auth/login"
)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
        db: AsyncSession = Depends(get_db),
        token: str = Depends(reusable_oauth2)
) -> User:
    payload = decode_access_token(token)
    if payload is None:
        raise _credentials_exception()

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise _credentials_exception()

    result = await db.execute(
        select(User).where(User.id == user_id, User.is_active == True)  # noqa: E712
    )
    user = result.scalars().first()

    # Deleted or deactivated since the token was issued
    if not user:
        raise _credentials_exception()

    return user


def require_same_account(current_user: User, email: str) -> None:
    """2FA management is only allowed on the caller's own account."""
    if current_user.email != email:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only manage two-factor authentication for your own account.",
        )


def get_google_verifier() -> GoogleVerifier:
    return verify_google_id_token


def get_auth_service(
        background_tasks: BackgroundTasks,
        db: AsyncSession = Depends(get_db),
        notifier: NotificationService = Depends(get_notifier),
        google_verifier: GoogleVerifier = Depends(get_google_verifier),
) -> AuthService:
    return AuthService(db, notifier, background_tasks, google_verifier)
