# runners_awareness/app/security/tokens.py
"""
One-shot verification secrets.

- Email verification / password reset: URL-safe token, 256 bits
- SMS verification: 6 digits, short-lived
"""
import secrets

VERIFICATION_TOKEN_BYTES = 32
VERIFICATION_CODE_DIGITS = 6


def generate_verification_token() -> str:
    return secrets.token_urlsafe(VERIFICATION_TOKEN_BYTES)


def generate_verification_code() -> str:
    return "".join(secrets.choice("0123456789") for _ in range(VERIFICATION_CODE_DIGITS))
