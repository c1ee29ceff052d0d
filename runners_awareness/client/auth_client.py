# runners_awareness/client/auth_client.py
"""
Synchronous client for the /auth HTTP interface.

Stores the session on login, google-login and 2FA verification and sends
it back as a bearer token. Any 401 clears the stored session and fires
`on_unauthorized` (the "send the user back to the login screen" hook)
before raising UnauthorizedError.
"""
import logging
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import httpx
from pydantic.alias_generators import to_camel

from runners_awareness.client.config import ClientConfig
from runners_awareness.client.session import SessionStore

logger = logging.getLogger(__name__)


class ApiError(RuntimeError):
    """Non-success answer from the API; `message` is the server's text."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class UnauthorizedError(ApiError):
    """401: the stored session was missing, expired or rejected."""


def _camel(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {to_camel(k): v for k, v in fields.items() if v is not None}


class AuthClient:
    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        session: Optional[SessionStore] = None,
        on_unauthorized: Optional[Callable[[], None]] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.config = config or ClientConfig()
        self.session = session or SessionStore(self.config.session_file)
        self.on_unauthorized = on_unauthorized
        self._http = httpx.Client(
            base_url=self.config.auth_base_url,
            timeout=self.config.timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "AuthClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ─────────────────────────────────────────────────────────────
    # Transport
    # ─────────────────────────────────────────────────────────────

    def _auth_headers(self) -> Dict[str, str]:
        if not self.session.is_authenticated():
            return {}
        return {"Authorization": f"Bearer {self.session.token}"}

    def _handle_unauthorized(self, message: str) -> None:
        self.session.clear()
        if self.on_unauthorized is not None:
            self.on_unauthorized()
        raise UnauthorizedError(message, 401)

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            res = self._http.request(method, path, json=body, headers=self._auth_headers())
        except httpx.HTTPError as e:
            raise ApiError(f"Network error calling {path}") from e

        try:
            data = res.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        message = data.get("message") or f"Request failed with status {res.status_code}"

        if res.status_code == 401:
            logger.info("Session rejected by %s; clearing stored session", path)
            self._handle_unauthorized(message)

        if res.is_error or data.get("success") is False:
            raise ApiError(message, res.status_code)

        return data

    def _store_session(self, data: Dict[str, Any]) -> Dict[str, Any]:
        token = data.get("token")
        if token:
            self.session.save(token, data.get("user"), data.get("expiresIn"))
        return data

    # ─────────────────────────────────────────────────────────────
    # Session
    # ─────────────────────────────────────────────────────────────

    def is_authenticated(self) -> bool:
        return self.session.is_authenticated()

    def current_user(self) -> Optional[Dict[str, Any]]:
        stored = self.session.load()
        return stored.user if stored else None

    def logout(self) -> None:
        """Tell the server, then drop the local session whatever it answered."""
        try:
            if self.session.is_authenticated():
                self._request("POST", "/logout")
        finally:
            self.session.clear()

    # ─────────────────────────────────────────────────────────────
    # Endpoints
    # ─────────────────────────────────────────────────────────────

    def register(self, email: str, password: str, role: str = "user", **fields: Any) -> Dict[str, Any]:
        """Extra fields use snake_case (first_name, phone_number, profile, ...)."""
        return self._request("POST", "/register", {"email": email, "password": password, "role": role, **_camel(fields)})

    def login(self, email: str, password: str) -> Dict[str, Any]:
        return self._store_session(self._request("POST", "/login", {"email": email, "password": password}))

    def admin_login(self, email: str, password: str) -> Dict[str, Any]:
        return self._store_session(self._request("POST", "/admin-login", {"email": email, "password": password}))

    def google_login(self, id_token: str) -> Dict[str, Any]:
        return self._store_session(self._request("POST", "/google-login", {"idToken": id_token}))

    def verify_email(self, token: str) -> Dict[str, Any]:
        return self._request("POST", "/verify-email", {"token": token})

    def verify_phone(self, code: str, email: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", "/verify-phone", _camel({"code": code, "email": email}))

    def resend_verification(self, email: str, type: str) -> Dict[str, Any]:
        return self._request("POST", "/resend-verification", {"email": email, "type": type})

    def forgot_password(self, email: str) -> Dict[str, Any]:
        return self._request("POST", "/forgot-password", {"email": email})

    def reset_password(self, token: str, new_password: str) -> Dict[str, Any]:
        return self._request("POST", "/reset-password", {"token": token, "newPassword": new_password})

    def change_password(self, current_password: str, new_password: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/change-password",
            {"currentPassword": current_password, "newPassword": new_password},
        )

    def update_phone(self, phone_number: str) -> Dict[str, Any]:
        return self._request("POST", "/update-phone", {"phoneNumber": phone_number})

    def update_profile(self, profile: Optional[Dict[str, Any]] = None, **fields: Any) -> Dict[str, Any]:
        """Name fields use snake_case; `profile` keys are sent as given."""
        body = _camel(fields)
        if profile is not None:
            body["profile"] = profile
        return self._request("PUT", "/profile", body)

    def me(self) -> Dict[str, Any]:
        return self._request("GET", "/me")

    def verify_token(self) -> Dict[str, Any]:
        return self._request("GET", "/verify")

    def setup_two_factor(self, email: str) -> Dict[str, Any]:
        return self._request("POST", "/2fa/setup", {"email": email})

    def enable_two_factor(self, email: str, totp: str) -> Dict[str, Any]:
        return self._request("POST", "/2fa/enable", {"email": email, "totp": totp})

    def verify_two_factor(self, email: str, totp: str) -> Dict[str, Any]:
        return self._store_session(self._request("POST", "/2fa/verify", {"email": email, "totp": totp}))

    def disable_two_factor(self, email: str, totp: str) -> Dict[str, Any]:
        return self._request("POST", "/2fa/disable", {"email": email, "totp": totp})

    def two_factor_status(self, email: str) -> Dict[str, Any]:
        return self._request("GET", f"/2fa/status/{quote(email, safe='@')}")
