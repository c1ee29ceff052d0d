# runners_awareness/app/security/totp.py
"""
TOTP (Time-based One-Time Password) and backup codes.
RFC 6238 compliant - compatible with Google Authenticator, Authy, Aegis

Key points:
- 6-digit codes
- 30-second time step, ±1 step accepted for clock drift
- HMAC-SHA1 (standard)
- Base32 secret encoding
- Backup codes: JSON array of single-use alphanumeric codes

Nothing here raises on user-supplied input: malformed secrets, codes or
code lists simply fail validation.
"""
import base64
import io
import json
import secrets
import string
from datetime import datetime
from typing import List, Optional, Union

import pyotp
import qrcode
from pyotp.utils import strings_equal

from runners_awareness.app.core.config import settings

TOTP_DIGITS = 6
TOTP_PERIOD = 30
TOTP_VALID_WINDOW = 1

BACKUP_CODE_ALPHABET = string.ascii_uppercase + string.digits

ForTime = Optional[Union[datetime, float]]


def generate_totp_secret() -> str:
    """
    Generate a new random TOTP secret (Base32 encoded).
    Returns 32-character Base32 string.
    """
    return pyotp.random_base32()


def get_totp_uri(secret: str, account_label: str, issuer: Optional[str] = None) -> str:
    """
    Generate the otpauth:// URI for QR code encoding.

    Format: otpauth://totp/{issuer}:{label}?secret={secret}&issuer={issuer}&...

    Authenticator apps scan this to add the account.
    """
    totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_PERIOD)
    uri = totp.provisioning_uri(name=account_label, issuer_name=issuer or settings.TOTP_ISSUER)
    # pyotp omits defaults; some authenticators want them spelled out
    if "digits=" not in uri:
        uri += f"&digits={TOTP_DIGITS}"
    if "period=" not in uri:
        uri += f"&period={TOTP_PERIOD}"
    if "algorithm=" not in uri:
        uri += "&algorithm=SHA1"
    return uri


def generate_qr_code_base64(secret: str, account_label: str, issuer: Optional[str] = None) -> str:
    """
    Generate a QR code image as Base64-encoded PNG.

    The QR code encodes the otpauth:// URI.
    Frontend can display this directly using: <img src="data:image/png;base64,{result}">
    """
    uri = get_totp_uri(secret, account_label, issuer)

    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    buffer.seek(0)

    return base64.b64encode(buffer.read()).decode("utf-8")


def _normalize_code(code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    code = code.strip().replace(" ", "")
    if len(code) != TOTP_DIGITS or not code.isdigit():
        return None
    return code


def match_totp_step(secret: str, code: str, for_time: ForTime = None) -> Optional[int]:
    """
    Return the time step (counter) the code belongs to, or None.

    Checks the current step and one step either side. The comparison is
    constant-time per candidate.
    """
    code = _normalize_code(code)
    if not secret or code is None:
        return None

    if for_time is None:
        for_time = datetime.now()
    elif not isinstance(for_time, datetime):
        for_time = datetime.fromtimestamp(for_time)

    try:
        totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_PERIOD)
        current_step = totp.timecode(for_time)
        for offset in range(-TOTP_VALID_WINDOW, TOTP_VALID_WINDOW + 1):
            if strings_equal(code, totp.generate_otp(current_step + offset)):
                return current_step + offset
    except Exception:
        # binascii / TypeError on a malformed secret
        return None
    return None


def verify_totp(secret: str, code: str, for_time: ForTime = None) -> bool:
    """
    Verify a 6-digit TOTP code.
    Returns True if valid, False otherwise.
    """
    return match_totp_step(secret, code, for_time) is not None


# ─────────────────────────────────────────────────────────────
# Backup codes
# ─────────────────────────────────────────────────────────────

def generate_backup_codes(count: Optional[int] = None, length: Optional[int] = None) -> str:
    """Fresh single-use codes, serialized as a JSON array for the user row."""
    count = count or settings.BACKUP_CODE_COUNT
    length = length or settings.BACKUP_CODE_LENGTH
    codes = [
        "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(length))
        for _ in range(count)
    ]
    return json.dumps(codes)


def load_backup_codes(serialized: Optional[str]) -> List[str]:
    if not serialized:
        return []
    try:
        codes = json.loads(serialized)
    except (TypeError, ValueError):
        return []
    if not isinstance(codes, list):
        return []
    return [c for c in codes if isinstance(c, str)]


def validate_backup_code(serialized: Optional[str], code: Optional[str]) -> bool:
    if not code:
        return False
    code = code.strip()
    # Walk every entry so the match position does not show in timing
    found = False
    for candidate in load_backup_codes(serialized):
        if strings_equal(candidate, code):
            found = True
    return found


def remove_used_backup_code(serialized: Optional[str], code: str) -> Optional[str]:
    """
    Return a new serialized list without `code`.

    Unparseable input is returned unchanged.
    """
    if not serialized or not code:
        return serialized
    try:
        codes = json.loads(serialized)
    except (TypeError, ValueError):
        return serialized
    if not isinstance(codes, list):
        return serialized
    code = code.strip()
    return json.dumps([c for c in codes if not (isinstance(c, str) and strings_equal(c, code))])
