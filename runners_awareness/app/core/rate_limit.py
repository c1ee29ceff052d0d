# runners_awareness/app/core/rate_limit.py
"""
Per-client request limits for the credential endpoints.

Limits are keyed on the remote address and kept in process memory, so each
worker counts on its own.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from runners_awareness.app.core.config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

TOO_MANY_REQUESTS = "Too many requests. Please try again later."
