"""Tests for registration, login and session tokens"""

import datetime
import time

from conftest import (
    LONDON_IP,
    NEW_YORK_IP,
    PARIS_IP,
    USER_EMAIL,
    USER_TEST_PASSWORD,
    login,
)
import pyotp
import pytest

from authguard import db
from authguard.errors import AuthenticationError
from authguard.models import LoginAttempt, PasswordHistory, User
from authguard.tokens import Signer

REGISTRATION = {
    "email": "New.User@Example.com",
    "password": "Str0ng!Pass",
    "first_name": "Ada",
    "last_name": "Lovelace",
}


def other_code(secret):
    """A six digit code that is not valid anywhere in the accepted window"""
    totp = pyotp.TOTP(secret)
    now = time.time()
    valid = {totp.at(now + step * 30) for step in range(-3, 4)}
    candidate = 0
    while f"{candidate:06d}" in valid:
        candidate += 1
    return f"{candidate:06d}"


class TestRegistration:
    def test_register_user(self, client):
        response = client.post("/api/v1/auth/register", json=REGISTRATION)
        assert response.status_code == 201

        data = response.json["data"]
        assert data["email"] == "new.user@example.com"
        assert data["first_name"] == "Ada"
        assert data["two_factor_enabled"] is False
        assert "password" not in data
        assert "two_factor_secret" not in data

        user = User.query.filter_by(email="new.user@example.com").first()
        assert user.password != REGISTRATION["password"]
        assert user.check_password(REGISTRATION["password"])
        assert user.password_history.count() == 1

    def test_register_duplicate_email(self, client):
        client.post("/api/v1/auth/register", json=REGISTRATION)
        response = client.post(
            "/api/v1/auth/register",
            json={**REGISTRATION, "email": "new.user@EXAMPLE.com"},
        )
        assert response.status_code == 409
        assert response.json["detail"] == "Email already registered"
        assert User.query.count() == 1

    def test_register_weak_password_lists_every_violation(self, client):
        response = client.post(
            "/api/v1/auth/register", json={**REGISTRATION, "password": "password"}
        )
        assert response.status_code == 400
        assert len(response.json["errors"]) == 3
        assert User.query.count() == 0

    def test_register_password_over_72_bytes(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={**REGISTRATION, "password": "Aa1!" + "x" * 80},
        )
        assert response.status_code == 400
        assert response.json["errors"] == ["Password must be at most 72 bytes long"]
        assert User.query.count() == 0

        attempt = LoginAttempt.query.one()
        assert attempt.failure_reason == "password_complexity"

    def test_register_missing_fields(self, client):
        response = client.post("/api/v1/auth/register", json={"email": "bad"})
        assert response.status_code == 400
        errors = response.json["errors"]
        assert "Invalid email format" in errors
        assert "Password is required" in errors

    def test_register_sanitizes_names(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={**REGISTRATION, "first_name": "<b>Ada</b>"},
        )
        assert response.status_code == 201
        assert "<" not in response.json["data"]["first_name"]


class TestLogin:
    def test_login_success(self, client, regular_user):
        response = login(client, USER_EMAIL, USER_TEST_PASSWORD)
        assert response.status_code == 200

        body = response.json
        assert body["token_type"] == "bearer"
        assert body["expires_in"] == 24 * 60 * 60
        assert body["user"]["email"] == USER_EMAIL
        assert "password" not in body["user"]
        assert body["suspicious_login"] is False

        user = User.query.filter_by(email=USER_EMAIL).first()
        assert user.last_login_ip == LONDON_IP
        assert user.last_login is not None

    def test_email_is_case_insensitive(self, client, regular_user):
        response = login(client, "  USER@Example.com ", USER_TEST_PASSWORD)
        assert response.status_code == 200

    def test_token_claims(self, app, client, regular_user):
        token = login(client, USER_EMAIL, USER_TEST_PASSWORD).json["access_token"]
        claims = Signer.verify(token)
        assert claims["sub"] == str(regular_user.id)
        assert claims["email"] == USER_EMAIL
        assert claims["is_admin"] is False
        assert claims["exp"] - claims["iat"] == 24 * 60 * 60

    def test_tampered_token_rejected(self, app, client, regular_user):
        token = login(client, USER_EMAIL, USER_TEST_PASSWORD).json["access_token"]
        header, payload, signature = token.split(".")
        with pytest.raises(AuthenticationError):
            Signer.verify(".".join([header, payload, signature[::-1]]))

    def test_expired_token_rejected(self, app, client, regular_user):
        token = Signer.sign(
            {"sub": regular_user.id}, ttl=datetime.timedelta(seconds=-1)
        )
        response = client.get(
            "/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401

        with pytest.raises(AuthenticationError):
            Signer.verify(token)

    def test_sign_and_verify(self, app):
        token = Signer.sign(
            {"sub": "abc", "email": "a@example.com", "is_admin": True},
            ttl=datetime.timedelta(minutes=5),
        )
        claims = Signer.verify(token)
        assert claims["sub"] == "abc"
        assert claims["email"] == "a@example.com"
        assert claims["is_admin"] is True
        assert claims["exp"] - claims["iat"] == 300

    def test_garbage_token_rejected(self, app):
        with pytest.raises(AuthenticationError):
            Signer.verify("not-a-token")

    def test_me(self, client, regular_user):
        token = login(client, USER_EMAIL, USER_TEST_PASSWORD).json["access_token"]
        response = client.get(
            "/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 200
        assert response.json["data"]["email"] == USER_EMAIL

    def test_me_requires_token(self, client):
        response = client.get("/api/v1/auth/me")
        assert response.status_code == 401

    def test_wrong_password_and_unknown_email_look_the_same(
        self, client, regular_user
    ):
        wrong_password = login(client, USER_EMAIL, "WrongPass123!")
        unknown = login(client, "nobody@example.com", "WrongPass123!")
        assert wrong_password.status_code == unknown.status_code == 401
        assert wrong_password.json == unknown.json

    def test_missing_credentials(self, client):
        response = client.post("/api/v1/auth/login", json={"email": USER_EMAIL})
        assert response.status_code == 400

    def test_inactive_account(self, client, regular_user):
        regular_user.is_active = False
        db.session.commit()
        response = login(client, USER_EMAIL, USER_TEST_PASSWORD)
        assert response.status_code == 403
        assert response.json["detail"] == "Account is inactive"

    def test_inactive_account_token_is_rejected(self, client, auth_headers_user):
        user = User.query.filter_by(email=USER_EMAIL).first()
        user.is_active = False
        db.session.commit()
        response = client.get("/api/v1/auth/me", headers=auth_headers_user)
        assert response.status_code == 401


class TestSuspiciousLogin:
    def test_first_login_is_not_suspicious(self, client, regular_user):
        response = login(client, USER_EMAIL, USER_TEST_PASSWORD, ip=NEW_YORK_IP)
        assert response.json["suspicious_login"] is False

    def test_nearby_login_is_not_suspicious(self, client, regular_user):
        login(client, USER_EMAIL, USER_TEST_PASSWORD, ip=LONDON_IP)
        response = login(client, USER_EMAIL, USER_TEST_PASSWORD, ip=PARIS_IP)
        assert response.status_code == 200
        assert response.json["suspicious_login"] is False

    def test_distant_login_in_other_country_is_flagged(self, client, regular_user):
        login(client, USER_EMAIL, USER_TEST_PASSWORD, ip=LONDON_IP)
        response = login(client, USER_EMAIL, USER_TEST_PASSWORD, ip=NEW_YORK_IP)
        # Advisory only: the login still succeeds
        assert response.status_code == 200
        assert response.json["suspicious_login"] is True

    def test_unknown_location_is_not_flagged(self, client, regular_user):
        login(client, USER_EMAIL, USER_TEST_PASSWORD, ip=LONDON_IP)
        response = login(client, USER_EMAIL, USER_TEST_PASSWORD, ip="10.0.0.1")
        assert response.json["suspicious_login"] is False


class TestTwoFactor:
    def _enable(self, client, headers):
        setup = client.post("/api/v1/auth/2fa/setup", headers=headers)
        assert setup.status_code == 200
        secret = setup.json["data"]["secret"]
        response = client.post(
            "/api/v1/auth/2fa/enable",
            json={"two_factor_code": pyotp.TOTP(secret).now()},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json["data"]["two_factor_enabled"] is True
        return secret

    def test_setup_returns_secret_uri_and_qr_code(self, client, auth_headers_user):
        response = client.post("/api/v1/auth/2fa/setup", headers=auth_headers_user)
        assert response.status_code == 200
        data = response.json["data"]
        assert data["provisioning_uri"].startswith("otpauth://totp/")
        assert data["qr_code"].startswith("data:image/png;base64,")

        user = User.query.filter_by(email=USER_EMAIL).first()
        assert not user.two_factor_enabled
        assert user.two_factor_secret == data["secret"]
        # Stored encrypted
        assert user._two_factor_secret != data["secret"]

    def test_enable_requires_setup(self, client, auth_headers_user):
        response = client.post(
            "/api/v1/auth/2fa/enable",
            json={"two_factor_code": "123456"},
            headers=auth_headers_user,
        )
        assert response.status_code == 400

    def test_enable_rejects_wrong_code(self, client, auth_headers_user):
        setup = client.post("/api/v1/auth/2fa/setup", headers=auth_headers_user)
        secret = setup.json["data"]["secret"]
        response = client.post(
            "/api/v1/auth/2fa/enable",
            json={"two_factor_code": other_code(secret)},
            headers=auth_headers_user,
        )
        assert response.status_code == 400
        assert response.json["detail"] == "Invalid 2FA code"

    def test_setup_refused_while_enabled(self, client, auth_headers_user):
        self._enable(client, auth_headers_user)
        response = client.post("/api/v1/auth/2fa/setup", headers=auth_headers_user)
        assert response.status_code == 409

    def test_login_without_code_asks_for_it(self, client, auth_headers_user):
        self._enable(client, auth_headers_user)
        response = login(client, USER_EMAIL, USER_TEST_PASSWORD)
        assert response.status_code == 401
        assert response.json["requires_two_factor"] is True
        assert response.json["detail"] == "2FA code required"

        user = User.query.filter_by(email=USER_EMAIL).first()
        assert user.failed_login_attempts == 0

    def test_login_with_wrong_code_counts_as_failure(self, client, auth_headers_user):
        secret = self._enable(client, auth_headers_user)
        response = login(
            client, USER_EMAIL, USER_TEST_PASSWORD, two_factor_code=other_code(secret)
        )
        assert response.status_code == 401
        assert "requires_two_factor" not in response.json

        user = User.query.filter_by(email=USER_EMAIL).first()
        assert user.failed_login_attempts == 1

    def test_login_with_code(self, client, auth_headers_user):
        secret = self._enable(client, auth_headers_user)
        response = login(
            client,
            USER_EMAIL,
            USER_TEST_PASSWORD,
            two_factor_code=pyotp.TOTP(secret).now(),
        )
        assert response.status_code == 200

    def test_login_with_drifted_code(self, client, auth_headers_user):
        secret = self._enable(client, auth_headers_user)
        code = pyotp.TOTP(secret).at(time.time() - 30)
        response = login(
            client, USER_EMAIL, USER_TEST_PASSWORD, two_factor_code=code
        )
        assert response.status_code == 200

    def test_wrong_password_checked_before_code(self, client, auth_headers_user):
        self._enable(client, auth_headers_user)
        response = login(client, USER_EMAIL, "WrongPass123!")
        assert response.status_code == 401
        assert "requires_two_factor" not in response.json

    def test_disable(self, client, auth_headers_user):
        secret = self._enable(client, auth_headers_user)
        response = client.post(
            "/api/v1/auth/2fa/disable",
            json={
                "password": USER_TEST_PASSWORD,
                "two_factor_code": pyotp.TOTP(secret).now(),
            },
            headers=auth_headers_user,
        )
        assert response.status_code == 200
        assert response.json["data"]["two_factor_enabled"] is False

        user = User.query.filter_by(email=USER_EMAIL).first()
        assert user.two_factor_secret is None
        assert login(client, USER_EMAIL, USER_TEST_PASSWORD).status_code == 200

    def test_disable_requires_password(self, client, auth_headers_user):
        secret = self._enable(client, auth_headers_user)
        response = client.post(
            "/api/v1/auth/2fa/disable",
            json={
                "password": "WrongPass123!",
                "two_factor_code": pyotp.TOTP(secret).now(),
            },
            headers=auth_headers_user,
        )
        assert response.status_code == 401


class TestChangePassword:
    def _change(self, client, headers, current, new):
        return client.post(
            "/api/v1/auth/change-password",
            json={"current_password": current, "new_password": new},
            headers=headers,
        )

    def test_change_password(self, client, auth_headers_user):
        response = self._change(
            client, auth_headers_user, USER_TEST_PASSWORD, "NewStrong123!"
        )
        assert response.status_code == 200
        assert login(client, USER_EMAIL, "NewStrong123!").status_code == 200
        assert login(client, USER_EMAIL, USER_TEST_PASSWORD).status_code == 401

    def test_wrong_current_password(self, client, auth_headers_user):
        response = self._change(
            client, auth_headers_user, "WrongPass123!", "NewStrong123!"
        )
        assert response.status_code == 401
        assert response.json["detail"] == "Current password is incorrect"

    def test_weak_new_password(self, client, auth_headers_user):
        response = self._change(client, auth_headers_user, USER_TEST_PASSWORD, "weak")
        assert response.status_code == 400
        assert len(response.json["errors"]) == 4

    def test_new_password_over_72_bytes(self, client, auth_headers_user):
        response = self._change(
            client, auth_headers_user, USER_TEST_PASSWORD, "Aa1!" + "x" * 80
        )
        assert response.status_code == 400
        assert response.json["errors"] == ["Password must be at most 72 bytes long"]
        assert login(client, USER_EMAIL, USER_TEST_PASSWORD).status_code == 200

    def test_current_password_cannot_be_reused(self, client, auth_headers_user):
        response = self._change(
            client, auth_headers_user, USER_TEST_PASSWORD, USER_TEST_PASSWORD
        )
        assert response.status_code == 400
        assert response.json["detail"] == "Cannot reuse any of your last 5 passwords"

    def test_last_five_passwords_are_rejected(self, client, auth_headers_user):
        passwords = [USER_TEST_PASSWORD] + [f"Rotated{i}Pass!" for i in range(1, 6)]
        for current, new in zip(passwords, passwords[1:]):
            assert self._change(client, auth_headers_user, current, new).status_code == 200

        user = User.query.filter_by(email=USER_EMAIL).first()
        assert user.password_history.count() == 6

        latest = passwords[-1]
        for old in passwords[1:]:
            response = self._change(client, auth_headers_user, latest, old)
            assert response.status_code == 400

        # Six changes ago falls outside the window
        response = self._change(client, auth_headers_user, latest, passwords[0])
        assert response.status_code == 200

    def test_change_clears_forced_reset(self, client, auth_headers_user):
        user = User.query.filter_by(email=USER_EMAIL).first()
        user.force_password_reset = True
        db.session.commit()

        response = self._change(
            client, auth_headers_user, USER_TEST_PASSWORD, "NewStrong123!"
        )
        assert response.status_code == 200
        assert response.json["data"]["force_password_reset"] is False

    def test_history_entries_are_hashes(self, app, client, auth_headers_user):
        self._change(client, auth_headers_user, USER_TEST_PASSWORD, "NewStrong123!")
        hashes = [entry.password_hash for entry in PasswordHistory.query.all()]
        assert "NewStrong123!" not in hashes
        assert all(h.startswith("$2") for h in hashes)


class TestPasswordStrengthEndpoint:
    def test_strength(self, client):
        response = client.post(
            "/api/v1/auth/password-strength", json={"password": "Str0ng!Pass"}
        )
        assert response.status_code == 200
        data = response.json["data"]
        assert data["strength"] == 60
        assert data["label"] == "Fair"
        assert data["complexity"]["is_valid"] is True

    def test_strength_requires_password(self, client):
        response = client.post("/api/v1/auth/password-strength", json={})
        assert response.status_code == 400
