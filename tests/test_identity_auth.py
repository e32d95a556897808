"""
tests/test_identity_auth.py -- Tests for IdentityAuth (auth/providers.py).

All provider traffic goes through FakeIdentityToolkit via httpx.MockTransport.

Coverage:
  - create_account: 201 payload, exists() before/after, duplicate, weak
    password, blank fields, redirect, provider offline / broken
  - login: 200 payload with idToken, wrong password / unknown email -> 401,
    no Set-Cookie on any login response, provider offline or null body
    -> login/general
  - logout: blanks the session keys
  - exists: False on provider fault, null provider body and blank username
"""

import json

import pytest

from auth.models import AuthUser

pytestmark = pytest.mark.asyncio

# Pre-provisioned by the toolkit fixture.
TEST_EMAIL = "test@example.com"
TEST_PASSWORD = "test123"


def _body(response) -> dict:
    return json.loads(response.body)


class TestCreateAccount:
    async def test_new_account_returns_201_and_then_exists(self, identity_auth):
        user = AuthUser(username="new@example.com", password="new123")
        assert await identity_auth.exists(user) is False

        resp = await identity_auth.create_account(user)
        assert resp.status_code == 201
        body = _body(resp)
        assert body["status"] == "success"
        assert body["user"]["email"] == "new@example.com"
        assert body["user"]["uid"]
        assert body["idToken"]

        assert await identity_auth.exists(user) is True

    async def test_account_creation_does_not_open_a_session(self, identity_auth):
        resp = await identity_auth.create_account(AuthUser(username="new@example.com", password="new123"))
        assert "set-cookie" not in resp.headers

    async def test_password_is_never_echoed(self, identity_auth):
        resp = await identity_auth.create_account(AuthUser(username="new@example.com", password="new123"))
        assert "new123" not in resp.body.decode()

    async def test_duplicate_email(self, identity_auth):
        resp = await identity_auth.create_account(AuthUser(username=TEST_EMAIL, password="another1"))
        assert resp.status_code == 400
        assert _body(resp)["errorCode"] == "auth/email-already-exists"

    async def test_weak_password_message_suffix_is_ignored(self, identity_auth):
        resp = await identity_auth.create_account(AuthUser(username="new@example.com", password="abc"))
        assert resp.status_code == 400
        assert _body(resp)["errorCode"] == "auth/weak-password"

    async def test_blank_email_is_rejected_before_provider_call(self, identity_auth, toolkit):
        resp = await identity_auth.create_account(AuthUser(username="  ", password="new123"))
        assert resp.status_code == 400
        body = _body(resp)
        assert body["status"] == "validationFailure"
        assert body["errorCode"] == "validation/invalid-email"
        assert toolkit.requests == []

    async def test_blank_password_is_rejected(self, identity_auth):
        resp = await identity_auth.create_account(AuthUser(username="new@example.com", password=""))
        assert resp.status_code == 400
        assert _body(resp)["errorCode"] == "validation/invalid-password"

    async def test_redirect_after_creation(self, identity_auth, toolkit):
        resp = await identity_auth.create_account(
            AuthUser(username="new@example.com", password="new123"), redirect_to="/welcome"
        )
        assert resp.status_code == 302
        assert resp.headers["location"] == "/welcome"
        assert "new@example.com" in toolkit.accounts

    async def test_provider_offline_returns_signup_general(self, identity_auth, toolkit):
        toolkit.offline = True
        resp = await identity_auth.create_account(AuthUser(username="new@example.com", password="new123"))
        assert resp.status_code == 500
        assert _body(resp)["errorCode"] == "signup/general"

    async def test_unclassified_provider_error_returns_signup_general(self, identity_auth, toolkit):
        toolkit.broken = True
        resp = await identity_auth.create_account(AuthUser(username="new@example.com", password="new123"))
        assert resp.status_code == 500
        assert _body(resp)["errorCode"] == "signup/general"


class TestLogin:
    async def test_valid_credentials_return_token_and_user(self, identity_auth):
        resp = await identity_auth.login(AuthUser(username=TEST_EMAIL, password=TEST_PASSWORD))
        assert resp.status_code == 200
        body = _body(resp)
        assert body["idToken"]
        assert body["user"]["email"] == TEST_EMAIL
        assert body["expiresIn"] == 3600
        assert resp.headers["cache-control"] == "no-store"

    async def test_login_never_sets_a_session_cookie(self, identity_auth):
        resp = await identity_auth.login(AuthUser(username=TEST_EMAIL, password=TEST_PASSWORD))
        assert "set-cookie" not in resp.headers

    async def test_wrong_password(self, identity_auth):
        resp = await identity_auth.login(AuthUser(username=TEST_EMAIL, password="wrong"))
        assert resp.status_code == 401
        body = _body(resp)
        assert body["status"] == "error"
        assert body["errorCode"] == "auth/invalid-credentials"
        assert "set-cookie" not in resp.headers

    async def test_unknown_email_is_indistinguishable_from_wrong_password(self, identity_auth):
        unknown = await identity_auth.login(AuthUser(username="nobody@example.com", password="whatever"))
        wrong = await identity_auth.login(AuthUser(username=TEST_EMAIL, password="wrong"))
        assert unknown.status_code == wrong.status_code == 401
        assert _body(unknown) == _body(wrong)

    async def test_blank_password_is_a_validation_failure(self, identity_auth, toolkit):
        resp = await identity_auth.login(AuthUser(username=TEST_EMAIL, password=" "))
        assert resp.status_code == 400
        assert _body(resp)["errorCode"] == "validation/invalid-password"
        assert toolkit.requests == []

    async def test_redirect_on_success(self, identity_auth):
        resp = await identity_auth.login(AuthUser(username=TEST_EMAIL, password=TEST_PASSWORD), redirect_to="/")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        assert "set-cookie" not in resp.headers

    async def test_provider_offline_returns_login_general(self, identity_auth, toolkit):
        toolkit.offline = True
        resp = await identity_auth.login(AuthUser(username=TEST_EMAIL, password=TEST_PASSWORD))
        assert resp.status_code == 500
        assert _body(resp)["errorCode"] == "login/general"

    async def test_provider_broken_returns_login_general(self, identity_auth, toolkit):
        toolkit.broken = True
        resp = await identity_auth.login(AuthUser(username=TEST_EMAIL, password=TEST_PASSWORD))
        assert resp.status_code == 500
        assert _body(resp)["errorCode"] == "login/general"

    async def test_null_provider_body_returns_login_general(self, identity_auth, toolkit):
        toolkit.null_body = True
        resp = await identity_auth.login(AuthUser(username=TEST_EMAIL, password=TEST_PASSWORD))
        assert resp.status_code == 500
        assert _body(resp)["errorCode"] == "login/general"
        assert "set-cookie" not in resp.headers


class TestExists:
    async def test_pre_provisioned_account_exists(self, identity_auth):
        assert await identity_auth.exists(AuthUser(username=TEST_EMAIL)) is True

    async def test_blank_username_never_reaches_provider(self, identity_auth, toolkit):
        assert await identity_auth.exists(AuthUser(username="")) is False
        assert toolkit.requests == []

    async def test_provider_fault_reads_as_not_registered(self, identity_auth, toolkit):
        toolkit.offline = True
        assert await identity_auth.exists(AuthUser(username=TEST_EMAIL)) is False

    async def test_null_provider_body_reads_as_not_registered(self, identity_auth, toolkit):
        toolkit.null_body = True
        assert await identity_auth.exists(AuthUser(username=TEST_EMAIL)) is False


class TestLogout:
    async def test_logout_blanks_every_session_key(self, identity_auth, sessions, carry_cookie):
        login = await sessions.create_auth_session(
            {"id": "u1", "username": TEST_EMAIL, "role": "admin", "token": "id-token-u1"}
        )
        request = carry_cookie(login)
        assert await identity_auth.user(request) is not None

        resp = await identity_auth.logout(request)
        assert resp.status_code == 204
        after = carry_cookie(resp)
        session = await sessions.get_auth_session(after)
        assert session.data == {"id": "", "username": "", "role": "", "token": ""}
        assert await identity_auth.user(after) is None

    async def test_logout_redirect(self, identity_auth, make_request):
        resp = await identity_auth.logout(make_request(), redirect_to="/login")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login"
