import asyncio
import os
import tempfile
from typing import Any, List, Optional, Tuple

# Must be in place before any runners_awareness import reads the settings
_TEST_DB_DIR = tempfile.mkdtemp(prefix="runners-awareness-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR}/test.db"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ENVIRONMENT"] = "test"
os.environ["SMTP_HOST"] = ""
os.environ["SMS_ACCOUNT_SID"] = ""
os.environ["GOOGLE_CLIENT_ID"] = ""
os.environ["RATE_LIMIT_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select, update

from runners_awareness.app.api.deps import get_google_verifier
from runners_awareness.app.db import init_models
from runners_awareness.app.db.session import AsyncSessionLocal
from runners_awareness.app.main import app
from runners_awareness.app.models.user import User
from runners_awareness.app.security.google import GoogleIdentity
from runners_awareness.app.services.auth_service import AuthService
from runners_awareness.app.services.notifications import get_notifier

API = "/api/auth"
PASSWORD = "Secr3t!Pass"


class RecordingNotifier:
    """Stands in for NotificationService; every send_* call is recorded."""

    def __init__(self):
        self.sent: List[Tuple[str, tuple]] = []

    def __getattr__(self, name: str):
        if not name.startswith("send_"):
            raise AttributeError(name)

        async def record(*args: Any) -> None:
            self.sent.append((name, args))

        record.__name__ = name
        return record

    def calls(self, name: str) -> List[tuple]:
        return [args for sent_name, args in self.sent if sent_name == name]

    def last(self, name: str) -> tuple:
        calls = self.calls(name)
        assert calls, f"{name} was never called"
        return calls[-1]


GOOGLE_TOKENS = {
    "google-ok": GoogleIdentity(
        email="gina@example.com",
        name="Gina Google",
        given_name="Gina",
        family_name="Google",
        subject="google-sub-1",
    ),
}


async def fake_google_verifier(id_token: str) -> Optional[GoogleIdentity]:
    return GOOGLE_TOKENS.get(id_token)


def run_db(operation):
    """Run `await operation(session)` against the test database and commit."""

    async def _run():
        async with AsyncSessionLocal() as db:
            result = await operation(db)
            await db.commit()
            return result

    return asyncio.run(_run())


def load_user(email: str) -> Optional[User]:
    async def _load(db):
        result = await db.execute(select(User).where(User.email == email))
        return result.scalars().first()

    return run_db(_load)


def update_user(email: str, **values: Any) -> None:
    async def _update(db):
        await db.execute(update(User).where(User.email == email).values(**values))

    run_db(_update)



def commit_before_compare_and_set(monkeypatch, **values: Any) -> None:
    """
    Make another session write `values` to the row after the service has
    read it, right before its compare-and-swap UPDATE runs.
    """
    original = AuthService._compare_and_set

    async def racing(self, user, *criteria, **new_values):
        async with AsyncSessionLocal() as other:
            await other.execute(update(User).where(User.id == user.id).values(**values))
            await other.commit()
        return await original(self, user, *criteria, **new_values)

    monkeypatch.setattr(AuthService, "_compare_and_set", racing)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def client(notifier):
    asyncio.run(init_models(drop_existing=True))
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_google_verifier] = lambda: fake_google_verifier
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


def register(client: TestClient, email: str = "alice@example.com", password: str = PASSWORD, **fields: Any):
    body = {"email": email, "password": password, "firstName": "Alice", "lastName": "Doe", **fields}
    return client.post(f"{API}/register", json=body)


def login(client: TestClient, email: str = "alice@example.com", password: str = PASSWORD):
    return client.post(f"{API}/login", json={"email": email, "password": password})


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
