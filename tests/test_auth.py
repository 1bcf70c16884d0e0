"""Tests for authentication endpoints."""

import pytest

from tests.conftest import (
    TEST_ADMIN_EMAIL,
    TEST_USER_EMAIL,
    TEST_USER_PASSWORD,
    next_nic,
)


def _registration(**overrides) -> dict:
    body = {
        "email": "kamala@example.lk",
        "password": "Strong#Pass123",
        "firstName": "Kamala",
        "lastName": "Silva",
        "nicNumber": next_nic(),
        "phoneNumber": "+94771234567",
    }
    body.update(overrides)
    return body


async def _login(async_client, email=TEST_USER_EMAIL, password=TEST_USER_PASSWORD) -> dict:
    response = await async_client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# --- Registration ---


@pytest.mark.asyncio
async def test_register_creates_user_and_tokens(async_client):
    """Test registration returns the stored profile and a token pair."""
    response = await async_client.post(
        "/auth/register", json=_registration(email="Kamala@Example.LK", nicNumber="200012345678")
    )
    assert response.status_code == 201
    data = response.json()
    assert data["user"]["email"] == "kamala@example.lk"
    assert data["user"]["nicNumber"] == "200012345678"
    assert data["user"]["role"] == "citizen"
    assert data["user"]["isActive"] is True
    assert data["tokens"]["tokenType"] == "Bearer"
    assert data["tokens"]["expiresIn"] > 0

    profile = await async_client.get("/auth/profile", headers=_bearer(data["tokens"]["accessToken"]))
    assert profile.status_code == 200
    assert profile.json()["email"] == "kamala@example.lk"


@pytest.mark.asyncio
async def test_register_duplicate_email(async_client, test_user):
    """Test registration fails with 409 when the email is taken, case-insensitively."""
    response = await async_client.post(
        "/auth/register", json=_registration(email=TEST_USER_EMAIL.upper())
    )
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "EMAIL_EXISTS"


@pytest.mark.asyncio
async def test_register_duplicate_nic(async_client, test_user):
    """Test registration fails with 409 when the NIC number is taken."""
    response = await async_client.post(
        "/auth/register", json=_registration(nicNumber=test_user.nic_number)
    )
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "NIC_EXISTS"


@pytest.mark.asyncio
async def test_register_weak_password(async_client):
    """Test registration rejects a password that fails the strength policy."""
    response = await async_client.post("/auth/register", json=_registration(password="weakpass"))
    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["code"] == "WEAK_PASSWORD"
    assert "Add an uppercase letter" in detail["suggestions"]


@pytest.mark.asyncio
async def test_register_validates_body(async_client):
    """Test registration validates required fields."""
    response = await async_client.post("/auth/register", json={"email": "not-an-email"})
    assert response.status_code == 422


# --- Login ---


@pytest.mark.asyncio
async def test_login_success(async_client, test_user, token_verifier):
    """Scenario: correct credentials yield an access token of type access."""
    data = await _login(async_client)
    assert data["tokenType"] == "Bearer"
    assert data["expiresIn"] > 0

    claims = token_verifier.verify(data["accessToken"])
    assert claims["type"] == "access"
    assert claims["id"] == str(test_user.id)
    assert claims["email"] == TEST_USER_EMAIL
    assert token_verifier.verify(data["refreshToken"])["type"] == "refresh"


@pytest.mark.asyncio
async def test_login_is_case_insensitive_on_email(async_client, test_user):
    await _login(async_client, email="A@B.COM")


@pytest.mark.asyncio
async def test_login_wrong_password(async_client, test_user):
    """Test login with wrong password."""
    response = await async_client.post(
        "/auth/login", json={"email": TEST_USER_EMAIL, "password": "Wrong#Pass123"}
    )
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "INVALID_CREDENTIALS"


@pytest.mark.asyncio
async def test_login_unknown_email(async_client, test_user):
    """Unknown email gives the same answer as a wrong password."""
    response = await async_client.post(
        "/auth/login", json={"email": "nobody@b.com", "password": TEST_USER_PASSWORD}
    )
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "INVALID_CREDENTIALS"


@pytest.mark.asyncio
async def test_login_deactivated_account(async_client, test_user, auth_headers):
    await async_client.post(
        "/auth/deactivate", json={"password": TEST_USER_PASSWORD}, headers=auth_headers
    )
    response = await async_client.post(
        "/auth/login", json={"email": TEST_USER_EMAIL, "password": TEST_USER_PASSWORD}
    )
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "USER_DEACTIVATED"


# --- Protected endpoints ---


@pytest.mark.asyncio
async def test_profile_requires_token(async_client):
    response = await async_client.get("/auth/profile")
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "TOKEN_REQUIRED"
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_profile_with_invalid_token(async_client):
    response = await async_client.get("/auth/profile", headers=_bearer("invalid.token.here"))
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "INVALID_TOKEN"


@pytest.mark.asyncio
async def test_get_current_user(async_client, test_user, auth_headers):
    """Test /auth/me returns the stored profile."""
    response = await async_client.get("/auth/me", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == str(test_user.id)
    assert data["firstName"] == "Nimal"
    assert data["isActive"] is True
    assert "passwordHash" not in data
    assert "password_hash" not in data


@pytest.mark.asyncio
@pytest.mark.parametrize("scheme", ["bearer", "BEARER"])
async def test_bearer_scheme_is_case_insensitive(async_client, test_user, auth_tokens, scheme):
    response = await async_client.get(
        "/auth/profile", headers={"Authorization": f"{scheme} {auth_tokens['access_token']}"}
    )
    assert response.status_code == 200
    assert response.json()["id"] == str(test_user.id)


@pytest.mark.asyncio
async def test_refresh_token_rejected_as_bearer(async_client, auth_tokens):
    """Using a refresh token on a protected endpoint is a type mismatch."""
    response = await async_client.get("/auth/profile", headers=_bearer(auth_tokens["refresh_token"]))
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "INVALID_TOKEN_TYPE"


@pytest.mark.asyncio
async def test_session_status_anonymous(async_client):
    response = await async_client.get("/auth/session")
    assert response.status_code == 200
    assert response.json() == {"authenticated": False, "user": None}


@pytest.mark.asyncio
async def test_session_status_with_bad_token_is_anonymous(async_client):
    response = await async_client.get("/auth/session", headers=_bearer("garbage"))
    assert response.status_code == 200
    assert response.json()["authenticated"] is False


@pytest.mark.asyncio
async def test_session_status_authenticated(async_client, test_user, auth_headers):
    response = await async_client.get("/auth/session", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["authenticated"] is True
    assert data["user"]["email"] == TEST_USER_EMAIL
    assert data["user"]["nicNumber"] == test_user.nic_number


# --- Refresh ---


@pytest.mark.asyncio
async def test_refresh_tokens(async_client, test_user, auth_tokens, token_verifier):
    """Test token refresh issues a new pair."""
    response = await async_client.post(
        "/auth/refresh-token", json={"refreshToken": auth_tokens["refresh_token"]}
    )
    assert response.status_code == 200
    data = response.json()
    assert token_verifier.verify(data["accessToken"])["id"] == str(test_user.id)

    # Same route under its short alias
    response = await async_client.post(
        "/auth/refresh", json={"refreshToken": auth_tokens["refresh_token"]}
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_refresh_token_is_not_rotated(async_client, auth_tokens):
    """The same refresh token can be exchanged more than once."""
    for _ in range(2):
        response = await async_client.post(
            "/auth/refresh-token", json={"refreshToken": auth_tokens["refresh_token"]}
        )
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_refresh_with_access_token(async_client, auth_tokens):
    """An access token cannot be exchanged for new tokens."""
    response = await async_client.post(
        "/auth/refresh-token", json={"refreshToken": auth_tokens["access_token"]}
    )
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "INVALID_TOKEN_TYPE"


@pytest.mark.asyncio
async def test_refresh_with_invalid_token(async_client, test_user):
    response = await async_client.post(
        "/auth/refresh-token", json={"refreshToken": "invalid.token.here"}
    )
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "INVALID_REFRESH_TOKEN"


@pytest.mark.asyncio
async def test_refresh_for_deactivated_user(async_client, auth_tokens, auth_headers):
    await async_client.post(
        "/auth/deactivate", json={"password": TEST_USER_PASSWORD}, headers=auth_headers
    )
    response = await async_client.post(
        "/auth/refresh-token", json={"refreshToken": auth_tokens["refresh_token"]}
    )
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "USER_INVALID"


# --- Logout ---


@pytest.mark.asyncio
async def test_logout_blacklists_token(async_client, test_user):
    """Scenario: a token presented after logout is rejected as blacklisted."""
    tokens = await _login(async_client)
    headers = _bearer(tokens["accessToken"])

    response = await async_client.get("/auth/profile", headers=headers)
    assert response.status_code == 200

    response = await async_client.post("/auth/logout", headers=headers)
    assert response.status_code == 200

    response = await async_client.get("/auth/profile", headers=headers)
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "TOKEN_BLACKLISTED"


@pytest.mark.asyncio
async def test_logout_leaves_other_sessions(async_client, test_user):
    first = await _login(async_client)
    second = await _login(async_client)

    await async_client.post("/auth/logout", headers=_bearer(first["accessToken"]))

    response = await async_client.get("/auth/profile", headers=_bearer(second["accessToken"]))
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_logout_all_sessions(async_client, test_user):
    """Scenario: old tokens die at the watermark, a later login is accepted."""
    old = await _login(async_client)
    other_device = await _login(async_client)

    response = await async_client.post(
        "/auth/logout-all-sessions", headers=_bearer(old["accessToken"])
    )
    assert response.status_code == 200

    for tokens in (old, other_device):
        response = await async_client.get("/auth/profile", headers=_bearer(tokens["accessToken"]))
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "TOKEN_GLOBALLY_INVALIDATED"

    fresh = await _login(async_client)
    response = await async_client.get("/auth/profile", headers=_bearer(fresh["accessToken"]))
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_global_logout_alias(async_client, test_user, auth_headers):
    response = await async_client.post("/auth/global-logout", headers=auth_headers)
    assert response.status_code == 200

    response = await async_client.get("/auth/profile", headers=auth_headers)
    assert response.json()["detail"]["code"] == "TOKEN_GLOBALLY_INVALIDATED"


# --- Account management ---


@pytest.mark.asyncio
async def test_change_password(async_client, test_user, auth_headers):
    """Changing the password invalidates existing tokens and the new one works."""
    response = await async_client.put(
        "/auth/change-password",
        json={"currentPassword": TEST_USER_PASSWORD, "newPassword": "Brand#New456"},
        headers=auth_headers,
    )
    assert response.status_code == 200

    response = await async_client.get("/auth/profile", headers=auth_headers)
    assert response.json()["detail"]["code"] == "TOKEN_GLOBALLY_INVALIDATED"

    old_login = await async_client.post(
        "/auth/login", json={"email": TEST_USER_EMAIL, "password": TEST_USER_PASSWORD}
    )
    assert old_login.status_code == 401
    await _login(async_client, password="Brand#New456")


@pytest.mark.asyncio
async def test_change_password_wrong_current(async_client, test_user, auth_headers):
    response = await async_client.put(
        "/auth/change-password",
        json={"currentPassword": "Wrong#Pass123", "newPassword": "Brand#New456"},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_CURRENT_PASSWORD"


@pytest.mark.asyncio
async def test_change_password_weak_new(async_client, test_user, auth_headers):
    response = await async_client.put(
        "/auth/change-password",
        json={"currentPassword": TEST_USER_PASSWORD, "newPassword": "weakpass"},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "WEAK_PASSWORD"


@pytest.mark.asyncio
async def test_deactivate_account(async_client, test_user, auth_headers):
    """Deactivated accounts' otherwise valid tokens are rejected."""
    response = await async_client.post(
        "/auth/deactivate", json={"password": TEST_USER_PASSWORD}, headers=auth_headers
    )
    assert response.status_code == 200

    response = await async_client.get("/auth/profile", headers=auth_headers)
    assert response.status_code == 401
    assert response.json()["detail"]["code"] in (
        "TOKEN_GLOBALLY_INVALIDATED",
        "ACCOUNT_DEACTIVATED",
    )


@pytest.mark.asyncio
async def test_deactivate_wrong_password(async_client, test_user, auth_headers):
    response = await async_client.post(
        "/auth/deactivate", json={"password": "Wrong#Pass123"}, headers=auth_headers
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_PASSWORD"


# --- Admin operations ---


@pytest.mark.asyncio
async def test_blacklist_stats_requires_admin(async_client, test_user, auth_headers):
    response = await async_client.get("/auth/stats/blacklist", headers=auth_headers)
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "INSUFFICIENT_PERMISSIONS"


@pytest.mark.asyncio
async def test_blacklist_stats(async_client, test_user, admin_headers):
    tokens = await _login(async_client)
    await async_client.post("/auth/logout", headers=_bearer(tokens["accessToken"]))

    response = await async_client.get("/auth/stats/blacklist", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["totalBlacklistedTokens"] == 1
    assert data["tokensByReason"] == {"logout": 1}
    assert data["recentLogouts24h"] == 1


@pytest.mark.asyncio
async def test_maintenance_cleanup(async_client, admin_user, admin_headers):
    response = await async_client.post("/auth/maintenance/cleanup", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["removed"] == 0


@pytest.mark.asyncio
async def test_admin_login(async_client, admin_user, token_verifier):
    from tests.conftest import TEST_ADMIN_PASSWORD

    data = await _login(async_client, email=TEST_ADMIN_EMAIL, password=TEST_ADMIN_PASSWORD)
    assert token_verifier.verify(data["accessToken"])["role"] == "admin"


@pytest.mark.asyncio
async def test_admin_deactivates_user(async_client, test_user, auth_headers, admin_headers):
    response = await async_client.post(
        f"/auth/users/{test_user.id}/deactivate", headers=admin_headers
    )
    assert response.status_code == 200

    response = await async_client.get("/auth/profile", headers=auth_headers)
    assert response.status_code == 401
    assert response.json()["detail"]["code"] in (
        "TOKEN_GLOBALLY_INVALIDATED",
        "ACCOUNT_DEACTIVATED",
    )


@pytest.mark.asyncio
async def test_admin_deactivate_unknown_user(async_client, admin_user, admin_headers):
    response = await async_client.post(
        "/auth/users/00000000-0000-0000-0000-000000000000/deactivate", headers=admin_headers
    )
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "USER_NOT_FOUND"


@pytest.mark.asyncio
async def test_admin_deactivate_requires_admin(async_client, test_user, auth_headers):
    response = await async_client.post(
        f"/auth/users/{test_user.id}/deactivate", headers=auth_headers
    )
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "INSUFFICIENT_PERMISSIONS"


# --- Profile updates ---


@pytest.mark.asyncio
async def test_update_profile(async_client, test_user, auth_headers):
    response = await async_client.put(
        "/auth/profile",
        json={"firstName": "Kamal", "phoneNumber": "+94771234567"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["firstName"] == "Kamal"
    assert data["lastName"] == "Perera"
    assert data["phoneNumber"] == "+94771234567"

    profile = await async_client.get("/auth/profile", headers=auth_headers)
    assert profile.json()["firstName"] == "Kamal"


@pytest.mark.asyncio
async def test_update_profile_without_fields(async_client, test_user, auth_headers):
    response = await async_client.put("/auth/profile", json={}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "NO_UPDATES"


@pytest.mark.asyncio
async def test_update_profile_requires_token(async_client):
    response = await async_client.put("/auth/profile", json={"firstName": "Kamal"})
    assert response.status_code == 401


# --- Password reset ---


async def _reset_token(db_session, identifier: str = TEST_USER_EMAIL) -> str:
    from citizen_auth.core.config import settings
    from citizen_auth.services.accounts import AccountService
    from citizen_auth.services.tokens import build_token_issuer, build_token_verifier

    accounts = AccountService(
        db_session, build_token_issuer(settings), build_token_verifier(settings), settings
    )
    token = await accounts.request_password_reset(identifier)
    assert token is not None
    return token


@pytest.mark.asyncio
@pytest.mark.parametrize("identifier", [TEST_USER_EMAIL, "nobody@example.lk", "0771234567"])
async def test_forgot_password_never_reveals_account(async_client, test_user, identifier):
    response = await async_client.post("/auth/forgot-password", json={"identifier": identifier})
    assert response.status_code == 200
    assert response.json() == {
        "code": "RESET_INSTRUCTIONS_SENT",
        "message": "Password reset instructions have been sent",
    }


@pytest.mark.asyncio
async def test_forgot_password_requires_identifier(async_client):
    response = await async_client.post("/auth/forgot-password", json={})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_reset_password_invalidates_old_tokens(async_client, db_session, test_user):
    """Scenario: a reset logs out every session and the new password works."""
    old = await _login(async_client)
    token = await _reset_token(db_session)

    response = await async_client.post(
        "/auth/reset-password",
        json={"token": token, "newPassword": "Brand#New456", "confirmPassword": "Brand#New456"},
    )
    assert response.status_code == 200
    assert response.json()["loggedOutAllSessions"] is True

    response = await async_client.get("/auth/profile", headers=_bearer(old["accessToken"]))
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "TOKEN_GLOBALLY_INVALIDATED"

    await _login(async_client, password="Brand#New456")

    reused = await async_client.post(
        "/auth/reset-password",
        json={"token": token, "newPassword": "Other#Pass789", "confirmPassword": "Other#Pass789"},
    )
    assert reused.status_code == 400
    assert reused.json()["detail"]["code"] == "INVALID_TOKEN"


@pytest.mark.asyncio
async def test_reset_password_mismatch(async_client, db_session, test_user):
    token = await _reset_token(db_session)
    response = await async_client.post(
        "/auth/reset-password",
        json={"token": token, "newPassword": "Brand#New456", "confirmPassword": "Brand#New457"},
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "PASSWORD_MISMATCH"


@pytest.mark.asyncio
async def test_reset_password_weak(async_client, db_session, test_user):
    token = await _reset_token(db_session)
    response = await async_client.post(
        "/auth/reset-password",
        json={"token": token, "newPassword": "weakpass", "confirmPassword": "weakpass"},
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "WEAK_PASSWORD"


@pytest.mark.asyncio
async def test_reset_password_unknown_token(async_client, test_user):
    response = await async_client.post(
        "/auth/reset-password",
        json={
            "token": "not-a-token",
            "newPassword": "Brand#New456",
            "confirmPassword": "Brand#New456",
        },
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_TOKEN"
