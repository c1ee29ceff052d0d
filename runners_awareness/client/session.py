# runners_awareness/client/session.py
"""
Persistent client session: one JSON file holding
{"token", "user", "expiresIn", "timestamp"}.

The token is opaque to the client. Expiry is computed locally from
timestamp + expiresIn (seconds).
"""
import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from pydantic import Field, ValidationError

from runners_awareness.app.schemas.common import CamelModel

logger = logging.getLogger(__name__)


class StoredSession(CamelModel):
    token: str
    user: Optional[Dict[str, Any]] = None
    expires_in: Optional[int] = None
    # Unix seconds when the session was stored
    timestamp: float = Field(default_factory=time.time)

    def expires_at(self) -> Optional[float]:
        if self.expires_in is None:
            return None
        return self.timestamp + self.expires_in


class SessionStore:
    def __init__(self, path: Path, clock: Callable[[], float] = time.time):
        self.path = Path(path)
        self._clock = clock

    def save(self, token: str, user: Optional[Dict[str, Any]], expires_in: Optional[int]) -> StoredSession:
        session = StoredSession(token=token, user=user, expires_in=expires_in, timestamp=self._clock())
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(session.model_dump_json(by_alias=True), encoding="utf-8")
        return session

    def load(self) -> Optional[StoredSession]:
        if not self.path.exists():
            return None
        try:
            return StoredSession.model_validate(json.loads(self.path.read_text(encoding="utf-8")))
        except (ValueError, ValidationError):
            logger.warning("Discarding unreadable session file %s", self.path)
            self.clear()
            return None

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)

    @property
    def token(self) -> Optional[str]:
        session = self.load()
        return session.token if session else None

    def is_authenticated(self) -> bool:
        session = self.load()
        if session is None or not session.token:
            return False
        expires_at = session.expires_at()
        return expires_at is None or self._clock() < expires_at
