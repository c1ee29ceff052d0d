# runners_awareness/client/config.py
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientConfig(BaseSettings):
    """
    Everything the auth client needs, passed once to its constructor.

    Loaded from RUNNERS_CLIENT_* environment variables when not given
    explicitly, e.g. RUNNERS_CLIENT_API_BASE_URL=https://api.example.org/api
    """

    # Up to and including the API prefix; "/auth/..." is appended per call
    api_base_url: str = "http://localhost:8000/api"
    session_file: Path = Path.home() / ".runners_awareness" / "session.json"
    timeout_seconds: float = 15.0

    model_config = SettingsConfigDict(env_prefix="RUNNERS_CLIENT_", extra="ignore")

    @property
    def auth_base_url(self) -> str:
        return f"{self.api_base_url.rstrip('/')}/auth"
