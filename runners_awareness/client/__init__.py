from runners_awareness.client.auth_client import ApiError, AuthClient, UnauthorizedError
from runners_awareness.client.config import ClientConfig
from runners_awareness.client.session import SessionStore, StoredSession

__all__ = [
    "ApiError",
    "AuthClient",
    "ClientConfig",
    "SessionStore",
    "StoredSession",
    "UnauthorizedError",
]
