# runners_awareness/app/security/hashing.py
"""
Password hashing (bcrypt, salted per call).
"""
from typing import Optional

import bcrypt

from runners_awareness.app.core.config import settings

# bcrypt only looks at the first 72 bytes; newer releases raise instead of truncating
_BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def get_password_hash(password: str) -> str:
    """Generate a bcrypt hash; the salt is embedded in the output."""
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(_encode(password), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """True iff the password re-hashes to the stored value. Malformed hashes never match."""
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(_encode(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        return False


# Compared against when the account does not exist so that unknown emails
# and wrong passwords take the same time
DUMMY_PASSWORD_HASH = get_password_hash("runners-awareness-dummy-password")
