from datetime import timedelta

from jose import jwt as jose_jwt

from conftest import API, PASSWORD, bearer, commit_before_compare_and_set, load_user, login, register, update_user
from runners_awareness.app.core.config import settings
from runners_awareness.app.core.rate_limit import limiter
from runners_awareness.app.security.jwt import decode_access_token
from runners_awareness.app.utils.time import utcnow


# ─────────────────────────────────────────────────────────────
# Registration
# ─────────────────────────────────────────────────────────────

def test_register_then_login_returns_decodable_token(client):
    res = register(client)
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["requiresVerification"] is True
    assert "token" not in body
    assert body["user"]["email"] == "alice@example.com"
    assert body["user"]["role"] == "user"

    res = login(client)
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["requiresVerification"] is True
    assert body["expiresIn"] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    claims = decode_access_token(body["token"])
    assert claims is not None
    assert claims["sub"] == body["user"]["userId"]
    assert claims["email"] == "alice@example.com"
    assert claims["role"] == "user"
    assert claims["email_verified"] is False


def test_register_never_returns_secret_material(client):
    body = register(client, phoneNumber="+15551234567").json()
    user = body["user"]
    for key in ("hashedPassword", "emailVerificationToken", "phoneVerificationCode", "twoFactorSecret"):
        assert key not in user


def test_register_sends_verification_email_and_sms(client, notifier):
    register(client, phoneNumber="+15551234567")
    email, name, token = notifier.last("send_verification_email")
    assert email == "alice@example.com"
    assert name == "Alice Doe"
    assert token == load_user("alice@example.com").email_verification_token

    phone, code = notifier.last("send_verification_sms")
    assert phone == "+15551234567"
    assert len(code) == 6 and code.isdigit()


def test_register_duplicate_email_rejected(client):
    register(client)
    res = register(client)
    assert res.status_code == 400
    assert res.json() == {"success": False, "message": "User with this email already exists."}


def test_register_admin_role_rejected(client):
    res = register(client, role="admin")
    assert res.status_code == 400
    assert res.json()["message"] == "Admin roles cannot be created through regular registration."
    assert load_user("alice@example.com") is None


def test_register_short_password_is_validation_error(client):
    res = register(client, password="short")
    assert res.status_code == 400
    body = res.json()
    assert body["success"] is False
    assert "password" in body["message"]


def test_register_stores_role_profile(client):
    res = register(
        client,
        role="therapist",
        profile={"licenseNumber": "LIC-42", "specialization": "Autism", "city": "Cincinnati"},
    )
    assert res.status_code == 200
    profile = res.json()["user"]["profile"]
    assert profile["role"] == "therapist"
    assert profile["licenseNumber"] == "LIC-42"
    assert profile["city"] == "Cincinnati"


def test_register_profile_for_other_role_rejected(client):
    res = register(client, role="caregiver", profile={"role": "therapist", "licenseNumber": "X"})
    assert res.status_code == 400
    assert res.json()["message"] == "Profile does not match the selected role."


def test_usernames_stay_unique(client):
    register(client, email="sam@example.com")
    register(client, email="sam@example.org")
    first = load_user("sam@example.com")
    second = load_user("sam@example.org")
    assert first.username == "sam"
    assert second.username != "sam"
    assert second.username.startswith("sam-")


# ─────────────────────────────────────────────────────────────
# Login
# ─────────────────────────────────────────────────────────────

def test_wrong_password_and_unknown_email_are_indistinguishable(client):
    register(client)
    wrong_password = login(client, password="not-the-password")
    unknown_email = login(client, email="nobody@example.com")
    assert wrong_password.status_code == unknown_email.status_code == 400
    assert wrong_password.content == unknown_email.content
    assert wrong_password.json()["message"] == "Invalid email or password."


def test_inactive_account_cannot_login(client):
    register(client)
    update_user("alice@example.com", is_active=False)
    res = login(client)
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid email or password."


def test_login_updates_last_login(client):
    register(client)
    assert load_user("alice@example.com").last_login_at is None
    login(client)
    assert load_user("alice@example.com").last_login_at is not None


def test_admin_login_requires_admin_role(client):
    register(client)
    res = client.post(f"{API}/admin-login", json={"email": "alice@example.com", "password": PASSWORD})
    assert res.status_code == 400
    assert res.json()["message"] == "Access denied. Admin privileges required."

    update_user("alice@example.com", role="admin")
    res = client.post(f"{API}/admin-login", json={"email": "alice@example.com", "password": PASSWORD})
    assert res.status_code == 200
    assert decode_access_token(res.json()["token"])["role"] == "admin"


def test_token_signed_with_other_key_is_rejected(client):
    register(client)
    user_id = login(client).json()["user"]["userId"]
    forged = jose_jwt.encode(
        {"sub": user_id, "iss": settings.JWT_ISSUER, "exp": int((utcnow() + timedelta(hours=1)).timestamp())},
        "some-other-key",
        algorithm="HS256",
    )
    res = client.get(f"{API}/me", headers=bearer(forged))
    assert res.status_code == 401
    assert res.json()["success"] is False


def test_me_requires_bearer(client):
    res = client.get(f"{API}/me")
    assert res.status_code == 401
    assert res.json() == {"success": False, "message": "Not authenticated"}


def test_me_returns_current_user(client):
    register(client)
    token = login(client).json()["token"]
    res = client.get(f"{API}/me", headers=bearer(token))
    assert res.status_code == 200
    assert res.json()["user"]["email"] == "alice@example.com"


# ─────────────────────────────────────────────────────────────
# Email / phone verification
# ─────────────────────────────────────────────────────────────

def test_verify_email_consumes_token(client, notifier):
    register(client)
    token = notifier.last("send_verification_email")[2]

    res = client.post(f"{API}/verify-email", json={"token": token})
    assert res.status_code == 200
    assert res.json()["user"]["emailVerified"] is True

    user = load_user("alice@example.com")
    assert user.email_verified is True
    assert user.email_verification_token is None
    assert user.email_verification_expiry is None
    assert notifier.calls("send_welcome_email") == [("alice@example.com", "Alice Doe")]

    replay = client.post(f"{API}/verify-email", json={"token": token})
    assert replay.status_code == 400
    assert replay.json()["message"] == "Invalid verification token."
    assert len(notifier.calls("send_welcome_email")) == 1


def test_login_after_email_verification_no_longer_requires_it(client, notifier):
    register(client)
    client.post(f"{API}/verify-email", json={"token": notifier.last("send_verification_email")[2]})
    body = login(client).json()
    assert body["requiresVerification"] is False
    assert decode_access_token(body["token"])["email_verified"] is True


def test_expired_email_token_fails_distinctly(client, notifier):
    register(client)
    token = notifier.last("send_verification_email")[2]
    update_user("alice@example.com", email_verification_expiry=utcnow() - timedelta(hours=1))

    expired = client.post(f"{API}/verify-email", json={"token": token})
    invalid = client.post(f"{API}/verify-email", json={"token": "not-a-real-token"})

    assert expired.status_code == invalid.status_code == 400
    assert expired.json()["message"] == "Verification token has expired."
    assert invalid.json()["message"] == "Invalid verification token."
    assert load_user("alice@example.com").email_verified is False


def test_email_token_consumed_concurrently_sends_no_welcome(client, notifier, monkeypatch):
    register(client)
    token = notifier.last("send_verification_email")[2]
    commit_before_compare_and_set(
        monkeypatch, email_verified=True, email_verification_token=None, email_verification_expiry=None
    )

    res = client.post(f"{API}/verify-email", json={"token": token})
    assert res.status_code == 400
    assert res.json() == {"success": False, "message": "Invalid verification token."}
    assert notifier.calls("send_welcome_email") == []
    assert load_user("alice@example.com").email_verified is True


def test_verify_phone(client, notifier):
    register(client, phoneNumber="+15551234567")
    code = notifier.last("send_verification_sms")[1]

    res = client.post(f"{API}/verify-phone", json={"code": code, "email": "alice@example.com"})
    assert res.status_code == 200
    assert res.json()["user"]["phoneVerified"] is True
    assert load_user("alice@example.com").phone_verification_code is None
    assert notifier.calls("send_welcome_sms")

    replay = client.post(f"{API}/verify-phone", json={"code": code})
    assert replay.status_code == 400
    assert replay.json()["message"] == "Invalid verification code."


def test_expired_phone_code(client, notifier):
    register(client, phoneNumber="+15551234567")
    code = notifier.last("send_verification_sms")[1]
    update_user("alice@example.com", phone_verification_expiry=utcnow() - timedelta(minutes=1))

    res = client.post(f"{API}/verify-phone", json={"code": code})
    assert res.status_code == 400
    assert res.json()["message"] == "Verification code has expired."


def test_resend_verification_issues_new_email_token(client, notifier):
    register(client)
    first = notifier.last("send_verification_email")[2]

    res = client.post(f"{API}/resend-verification", json={"email": "alice@example.com", "type": "EMAIL"})
    assert res.status_code == 200
    assert res.json() == {"success": True, "message": "Verification email sent successfully."}

    second = notifier.last("send_verification_email")[2]
    assert second != first
    assert client.post(f"{API}/verify-email", json={"token": first}).status_code == 400
    assert client.post(f"{API}/verify-email", json={"token": second}).status_code == 200


def test_resend_when_already_verified_or_no_phone(client, notifier):
    register(client)
    client.post(f"{API}/verify-email", json={"token": notifier.last("send_verification_email")[2]})

    for kind in ("email", "phone"):
        res = client.post(f"{API}/resend-verification", json={"email": "alice@example.com", "type": kind})
        assert res.status_code == 400
        assert res.json()["message"] == "Invalid verification type or already verified."


def test_resend_verification_bad_type_is_validation_error(client):
    register(client)
    res = client.post(f"{API}/resend-verification", json={"email": "alice@example.com", "type": "fax"})
    assert res.status_code == 400
    assert res.json()["success"] is False


# ─────────────────────────────────────────────────────────────
# Google sign-in
# ─────────────────────────────────────────────────────────────

def test_google_login_provisions_verified_account(client):
    res = client.post(f"{API}/google-login", json={"idToken": "google-ok"})
    assert res.status_code == 200
    body = res.json()
    assert body["token"]
    assert body["user"]["email"] == "gina@example.com"
    assert body["user"]["emailVerified"] is True

    user = load_user("gina@example.com")
    assert user.auth_provider == "google"
    assert user.hashed_password is None

    # No password on file: password login must fail the generic way
    assert login(client, email="gina@example.com", password="anything-at-all").status_code == 400


def test_google_login_reuses_existing_account(client):
    register(client, email="gina@example.com")
    res = client.post(f"{API}/google-login", json={"idToken": "google-ok"})
    assert res.status_code == 200
    user = load_user("gina@example.com")
    assert user.auth_provider == "local"
    assert user.email_verified is True


def test_google_login_bad_token(client):
    res = client.post(f"{API}/google-login", json={"idToken": "forged"})
    assert res.status_code == 400
    assert res.json() == {"success": False, "message": "Invalid Google token."}


# ─────────────────────────────────────────────────────────────
# Password management
# ─────────────────────────────────────────────────────────────

def test_forgot_password_does_not_disclose_accounts(client, notifier):
    register(client)
    known = client.post(f"{API}/forgot-password", json={"email": "alice@example.com"})
    unknown = client.post(f"{API}/forgot-password", json={"email": "nobody@example.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert len(notifier.calls("send_password_reset_email")) == 1


def test_reset_password_flow(client, notifier):
    register(client)
    client.post(f"{API}/forgot-password", json={"email": "alice@example.com"})
    token = notifier.last("send_password_reset_email")[2]

    res = client.post(f"{API}/reset-password", json={"token": token, "newPassword": "BrandNew!Pass1"})
    assert res.status_code == 200
    assert res.json()["success"] is True
    assert notifier.calls("send_password_change_confirmation")

    assert login(client).status_code == 400
    assert login(client, password="BrandNew!Pass1").status_code == 200

    replay = client.post(f"{API}/reset-password", json={"token": token, "newPassword": "Another!Pass2"})
    assert replay.status_code == 400
    assert replay.json()["message"] == "Invalid password reset token."


def test_expired_reset_token(client, notifier):
    register(client)
    client.post(f"{API}/forgot-password", json={"email": "alice@example.com"})
    token = notifier.last("send_password_reset_email")[2]
    update_user("alice@example.com", password_reset_expiry=utcnow() - timedelta(minutes=5))

    res = client.post(f"{API}/reset-password", json={"token": token, "newPassword": "BrandNew!Pass1"})
    assert res.status_code == 400
    assert res.json()["message"] == "Password reset token has expired."


def test_change_password(client):
    register(client)
    token = login(client).json()["token"]

    wrong = client.post(
        f"{API}/change-password",
        json={"currentPassword": "nope-nope", "newPassword": "BrandNew!Pass1"},
        headers=bearer(token),
    )
    assert wrong.status_code == 400
    assert wrong.json()["message"] == "Current password is incorrect."

    ok = client.post(
        f"{API}/change-password",
        json={"currentPassword": PASSWORD, "newPassword": "BrandNew!Pass1"},
        headers=bearer(token),
    )
    assert ok.status_code == 200
    assert login(client, password="BrandNew!Pass1").status_code == 200


def test_update_phone_requires_reverification(client, notifier):
    register(client)
    register(client, email="bob@example.com", phoneNumber="+15550000001")
    token = login(client).json()["token"]

    taken = client.post(f"{API}/update-phone", json={"phoneNumber": "+15550000001"}, headers=bearer(token))
    assert taken.status_code == 400
    assert taken.json()["message"] == "Phone number is already in use by another account."

    res = client.post(f"{API}/update-phone", json={"phoneNumber": "+15557654321"}, headers=bearer(token))
    assert res.status_code == 200
    assert res.json()["requiresVerification"] is True

    phone, code = notifier.last("send_verification_sms")
    assert phone == "+15557654321"
    user = load_user("alice@example.com")
    assert user.phone_number == "+15557654321"
    assert user.phone_verified is False
    assert user.phone_verification_code == code


# ─────────────────────────────────────────────────────────────
# Profile, token check and logout
# ─────────────────────────────────────────────────────────────

def test_update_profile_merges_role_fields(client):
    register(client, role="therapist", profile={"licenseNumber": "LIC-42", "city": "Cincinnati"})
    token = login(client).json()["token"]

    res = client.put(
        f"{API}/profile",
        json={"lastName": "Smith", "fullName": "Dr. Alice Smith", "profile": {"specialization": "Autism", "city": "Dayton"}},
        headers=bearer(token),
    )
    assert res.status_code == 200, res.text
    user = res.json()["user"]
    assert res.json()["message"] == "Profile updated successfully."
    assert user["lastName"] == "Smith"
    assert user["fullName"] == "Dr. Alice Smith"
    assert user["profile"] == {
        "role": "therapist",
        "licenseNumber": "LIC-42",
        "specialization": "Autism",
        "city": "Dayton",
    }
    assert load_user("alice@example.com").role_details["city"] == "Dayton"


def test_update_profile_rejects_fields_of_another_role(client):
    register(client, role="caregiver", profile={"organization": "Runners Club"})
    token = login(client).json()["token"]

    res = client.put(f"{API}/profile", json={"profile": {"licenseNumber": "LIC-1"}}, headers=bearer(token))
    assert res.status_code == 400
    assert res.json()["success"] is False
    assert "licenseNumber" in res.json()["message"]
    assert load_user("alice@example.com").role_details == {"role": "caregiver", "organization": "Runners Club"}


def test_update_profile_cannot_switch_role(client):
    register(client, role="caregiver")
    token = login(client).json()["token"]

    res = client.put(f"{API}/profile", json={"profile": {"role": "therapist", "city": "Dayton"}}, headers=bearer(token))
    assert res.status_code == 200
    assert res.json()["user"]["role"] == "caregiver"
    assert res.json()["user"]["profile"] == {"role": "caregiver", "city": "Dayton"}


def test_update_profile_for_admin_roles(client):
    register(client)
    update_user("alice@example.com", role="admin")
    token = login(client).json()["token"]

    res = client.put(f"{API}/profile", json={"profile": {"city": "Dayton"}}, headers=bearer(token))
    assert res.status_code == 400
    assert res.json()["message"] == "Profile fields are not available for this role."

    names_only = client.put(f"{API}/profile", json={"firstName": "Al"}, headers=bearer(token))
    assert names_only.status_code == 200
    assert names_only.json()["user"]["firstName"] == "Al"


def test_update_profile_requires_bearer(client):
    res = client.put(f"{API}/profile", json={"firstName": "Al"})
    assert res.status_code == 401


def test_verify_token(client):
    register(client)
    token = login(client).json()["token"]

    for method in ("GET", "POST"):
        res = client.request(method, f"{API}/verify", headers=bearer(token))
        assert res.status_code == 200
        assert res.json()["message"] == "Token is valid."
        assert res.json()["user"]["email"] == "alice@example.com"

    assert client.get(f"{API}/verify").status_code == 401
    assert client.get(f"{API}/verify", headers=bearer("not-a-jwt")).status_code == 401


def test_logout(client):
    register(client)
    token = login(client).json()["token"]

    res = client.post(f"{API}/logout", headers=bearer(token))
    assert res.status_code == 200
    assert res.json() == {"success": True, "message": "Logged out successfully."}
    assert client.post(f"{API}/logout").status_code == 401


# ─────────────────────────────────────────────────────────────
# Rate limiting
# ─────────────────────────────────────────────────────────────

def test_login_is_rate_limited_per_client(client):
    register(client)
    limiter.enabled = True
    limiter.reset()
    try:
        answers = [login(client, password="wrong-password") for _ in range(6)]
        other_route = client.post(f"{API}/forgot-password", json={"email": "alice@example.com"})
    finally:
        limiter.enabled = False
        limiter.reset()

    assert [res.status_code for res in answers[:5]] == [400] * 5
    assert answers[5].status_code == 429
    assert answers[5].json() == {"success": False, "message": "Too many requests. Please try again later."}
    # Each route counts on its own
    assert other_route.status_code == 200
