# runners_awareness/app/schemas/two_factor.py
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from runners_awareness.app.schemas.common import CamelModel


class TwoFactorSetupRequest(CamelModel):
    email: str = Field(..., min_length=1)


class TwoFactorSetupResponse(CamelModel):
    """
    Returned once, right after setup.

    The secret and backup codes are shown to the user here and never again.
    """
    success: bool
    message: str
    qr_code_url: str
    # Base64 PNG of qr_code_url for clients that cannot render QR codes
    qr_code_image: Optional[str] = None
    secret: str
    backup_codes: List[str]


class TwoFactorCodeRequest(CamelModel):
    """Used by /2fa/verify, /2fa/enable and /2fa/disable."""
    email: str = Field(..., min_length=1)
    totp: str = Field(..., min_length=1, max_length=32)


class TwoFactorStatusResponse(CamelModel):
    two_factor_enabled: bool
    two_factor_setup_date: Optional[datetime] = None
    has_secret: bool
