# runners_awareness/app/security/google.py
"""
Google ID token verification through Google's tokeninfo endpoint.
"""
import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from runners_awareness.app.core.config import settings

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = {"accounts.google.com", "https://accounts.google.com"}


@dataclass
class GoogleIdentity:
    email: str
    name: Optional[str]
    given_name: Optional[str]
    family_name: Optional[str]
    subject: str


async def verify_google_id_token(id_token: str) -> Optional[GoogleIdentity]:
    """
    Validate an ID token and return the identity it asserts.

    Returns None for any token Google rejects, a foreign audience, an
    unverified email or an expired token.
    """
    if not id_token:
        return None

    async with httpx.AsyncClient(timeout=10) as client:
        res = await client.get(settings.GOOGLE_TOKENINFO_URL, params={"id_token": id_token})

    if res.status_code != 200:
        logger.info("Google tokeninfo rejected token (status=%s)", res.status_code)
        return None

    claims = res.json()

    if claims.get("iss") not in GOOGLE_ISSUERS:
        return None
    if settings.GOOGLE_CLIENT_ID and claims.get("aud") != settings.GOOGLE_CLIENT_ID:
        logger.warning("Google token issued for a different client id")
        return None
    if str(claims.get("email_verified", "")).lower() != "true":
        return None
    try:
        if int(claims.get("exp", 0)) < int(time.time()):
            return None
    except (TypeError, ValueError):
        return None

    email = claims.get("email")
    if not email:
        return None

    return GoogleIdentity(
        email=email,
        name=claims.get("name"),
        given_name=claims.get("given_name"),
        family_name=claims.get("family_name"),
        subject=str(claims.get("sub", "")),
    )
