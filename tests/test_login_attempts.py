"""Tests for the login attempt ledger"""

import datetime

from conftest import LONDON_IP, USER_EMAIL, USER_TEST_PASSWORD, login
import pytest

from authguard.models import LoginAttempt, utcnow
from authguard.services import LoginAttemptService
from authguard.services import login_attempt_service as reasons
from authguard.utils.geolocation import GeoLocation


class TestLoginAttemptService:
    def test_record_success(self, app, regular_user):
        attempt = LoginAttemptService.record(
            regular_user.id,
            USER_EMAIL,
            LONDON_IP,
            True,
            reason="ignored",
            user_agent="pytest",
            location=GeoLocation(country="GB", city="London"),
        )
        assert attempt.success
        assert attempt.failure_reason is None
        assert attempt.country == "GB"
        assert attempt.city == "London"
        assert LoginAttempt.query.count() == 1

    def test_failure_requires_reason(self, app):
        with pytest.raises(ValueError):
            LoginAttemptService.record(None, USER_EMAIL, LONDON_IP, False)

    def test_record_resolves_location(self, app):
        attempt = LoginAttemptService.record(
            None, USER_EMAIL, LONDON_IP, False, reasons.USER_NOT_FOUND
        )
        assert attempt.country == "GB"

    def test_missing_ip(self, app):
        attempt = LoginAttemptService.record(
            None, USER_EMAIL, None, False, reasons.INVALID_REQUEST
        )
        assert attempt.ip_address == "unknown"
        assert attempt.country is None

    def test_limits_are_clamped(self, app):
        for _ in range(3):
            LoginAttemptService.record(
                None, USER_EMAIL, LONDON_IP, False, reasons.USER_NOT_FOUND
            )
        assert len(LoginAttemptService.get_recent(2)) == 2
        assert len(LoginAttemptService.get_recent("not-a-number")) == 3
        assert len(LoginAttemptService.get_recent(0)) == 1

    def test_count_failures_since(self, app):
        LoginAttemptService.record(
            None, USER_EMAIL, LONDON_IP, False, reasons.USER_NOT_FOUND
        )
        LoginAttemptService.record(None, USER_EMAIL, LONDON_IP, True)
        assert LoginAttemptService.count_failures_since() == 1
        future = utcnow() + datetime.timedelta(minutes=1)
        assert LoginAttemptService.count_failures_since(future) == 0


class TestLedgerThroughEndpoints:
    """Every login and registration attempt writes exactly one entry"""

    def _reasons(self):
        return [attempt.failure_reason for attempt in LoginAttempt.query.all()]

    def test_successful_login(self, client, regular_user):
        login(client, USER_EMAIL, USER_TEST_PASSWORD)
        attempts = LoginAttempt.query.all()
        assert len(attempts) == 1
        assert attempts[0].success
        assert attempts[0].user_id == regular_user.id
        assert attempts[0].ip_address == LONDON_IP
        assert attempts[0].country == "GB"

    def test_user_agent_is_recorded(self, client, regular_user):
        client.post(
            "/api/v1/auth/login",
            json={"email": USER_EMAIL, "password": USER_TEST_PASSWORD},
            headers={"User-Agent": "pytest-agent"},
        )
        assert LoginAttempt.query.one().user_agent == "pytest-agent"

    def test_unknown_email(self, client):
        login(client, "nobody@example.com", "WrongPass123!")
        attempt = LoginAttempt.query.one()
        assert not attempt.success
        assert attempt.user_id is None
        assert attempt.email == "nobody@example.com"
        assert attempt.failure_reason == reasons.USER_NOT_FOUND

    def test_wrong_password(self, client, regular_user):
        login(client, USER_EMAIL, "WrongPass123!")
        assert self._reasons() == [reasons.INVALID_PASSWORD]

    def test_lock_rejections_are_recorded(self, client, regular_user):
        for _ in range(4):
            login(client, USER_EMAIL, "WrongPass123!")
        assert sorted(self._reasons()) == sorted(
            [reasons.INVALID_PASSWORD] * 3 + [reasons.ACCOUNT_SOFT_LOCKED]
        )

    def test_invalid_request(self, client):
        client.post("/api/v1/auth/login", json={"email": USER_EMAIL})
        assert self._reasons() == [reasons.INVALID_REQUEST]

    def test_registration_outcomes(self, client):
        registration = {
            "email": "new@example.com",
            "password": "Str0ng!Pass",
            "first_name": "Ada",
            "last_name": "Lovelace",
        }
        client.post("/api/v1/auth/register", json=registration)
        client.post("/api/v1/auth/register", json=registration)
        client.post(
            "/api/v1/auth/register",
            json={**registration, "email": "weak@example.com", "password": "weak"},
        )

        attempts = LoginAttempt.query.all()
        assert len(attempts) == 3
        assert sum(1 for a in attempts if a.success) == 1
        assert sorted(a.failure_reason for a in attempts if not a.success) == sorted(
            [reasons.EMAIL_ALREADY_REGISTERED, reasons.PASSWORD_COMPLEXITY]
        )

    def test_serialize(self, client, regular_user):
        login(client, USER_EMAIL, USER_TEST_PASSWORD)
        data = LoginAttempt.query.one().serialize()
        assert data["user_id"] == str(regular_user.id)
        assert data["success"] is True
        assert data["failure_reason"] is None
        assert data["created_at"]
