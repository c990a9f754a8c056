"""
Test configuration and fixtures for AuthGuard API tests
"""

import atexit
import os
import sys
import tempfile

import pytest

# Add the project root to the Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Set environment variables for testing before importing the app
os.environ["ENVIRONMENT"] = "testing"
os.environ["TESTING"] = "true"

# Set minimal required environment variables for testing if not already set
if not os.environ.get("JWT_SECRET_KEY"):
    os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-for-ci"
if not os.environ.get("SECRET_KEY"):
    os.environ["SECRET_KEY"] = "test-secret-key-for-ci"

# The engine is created when the app is imported, so the database has to be
# chosen here. CI may point DATABASE_URL at PostgreSQL.
if not os.environ.get("DATABASE_URL"):
    _db_fd, _db_path = tempfile.mkstemp(suffix=".sqlite")
    os.close(_db_fd)
    os.environ["DATABASE_URL"] = f"sqlite:///{_db_path}"
    atexit.register(lambda: os.path.exists(_db_path) and os.unlink(_db_path))

from flask_jwt_extended import create_access_token  # noqa: E402

from authguard import app as flask_app  # noqa: E402
from authguard import db, limiter  # noqa: E402
from authguard.models import PasswordHistory, User  # noqa: E402
from authguard.utils import geolocation  # noqa: E402
from authguard.utils.geolocation import GeoLocation  # noqa: E402

# Strong password values for test fixtures
USER_TEST_PASSWORD = "UserPass123!"
ADMIN_TEST_PASSWORD = "AdminPass123!"
NEW_STRONG_PASSWORD = "NewStrong123!"

USER_EMAIL = "user@example.com"
ADMIN_EMAIL = "admin@example.com"

# Client addresses used by the geolocation stub
LONDON_IP = "81.2.69.160"
PARIS_IP = "82.64.10.10"
NEW_YORK_IP = "24.24.24.24"

LOCATIONS = {
    LONDON_IP: GeoLocation(
        country="GB", city="London", timezone="Europe/London", coordinates=(51.5, -0.12)
    ),
    PARIS_IP: GeoLocation(
        country="FR", city="Paris", timezone="Europe/Paris", coordinates=(48.85, 2.35)
    ),
    NEW_YORK_IP: GeoLocation(
        country="US",
        city="New York",
        timezone="America/New_York",
        coordinates=(40.71, -74.0),
    ),
}


def fake_resolve(ip):
    return LOCATIONS.get(ip, geolocation.UNKNOWN_LOCATION)


def _create_tables():
    db.drop_all()
    db.create_all()


@pytest.fixture(autouse=True)
def stub_geolocation(monkeypatch):
    """Resolve the fixed test addresses without a GeoIP database"""
    monkeypatch.setattr(geolocation, "resolve", fake_resolve)


@pytest.fixture(scope="function")
def app():
    """Create application for testing without rate limiting"""
    app = flask_app

    with app.app_context():
        original_rate_limiting = app.config.get("RATE_LIMITING")
        app.config["RATE_LIMITING"] = {**original_rate_limiting, "ENABLED": False}

        original_limiter_enabled = limiter.enabled
        limiter.enabled = False

        try:
            _create_tables()
            yield app
        finally:
            db.session.remove()
            limiter.enabled = original_limiter_enabled
            app.config["RATE_LIMITING"] = original_rate_limiting


@pytest.fixture(scope="function")
def app_with_rate_limiting():
    """Create application for testing with login rate limiting enabled"""
    app = flask_app

    with app.app_context():
        original_rate_limiting = app.config.get("RATE_LIMITING")
        app.config["RATE_LIMITING"] = {
            **original_rate_limiting,
            "ENABLED": True,
            "LOGIN_MAX_ATTEMPTS": 5,
            "LOGIN_WINDOW_MS": 15 * 60 * 1000,
        }

        original_limiter_enabled = limiter.enabled
        limiter.enabled = True
        limiter.reset()

        try:
            _create_tables()
            yield app
        finally:
            db.session.remove()
            limiter.enabled = original_limiter_enabled
            limiter.reset()
            app.config["RATE_LIMITING"] = original_rate_limiting


@pytest.fixture
def client(app):
    """Create test client"""
    return app.test_client()


def make_user(email, password, is_admin=False, first_name="Test", last_name="User"):
    user = User(
        email=email,
        password=password,
        first_name=first_name,
        last_name=last_name,
        is_admin=is_admin,
    )
    user.password_history.append(PasswordHistory(password_hash=user.password))
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def regular_user(app):
    """Create regular test user"""
    return make_user(USER_EMAIL, USER_TEST_PASSWORD)


@pytest.fixture
def admin_user(app):
    """Create admin test user"""
    return make_user(
        ADMIN_EMAIL, ADMIN_TEST_PASSWORD, is_admin=True, first_name="Admin"
    )


@pytest.fixture
def auth_headers_user(regular_user):
    """Get auth headers for regular user"""
    token = create_access_token(identity=str(regular_user.id))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers_admin(admin_user):
    """Get auth headers for admin user"""
    token = create_access_token(identity=str(admin_user.id))
    return {"Authorization": f"Bearer {token}"}


def login(client, email, password, ip=LONDON_IP, **extra):
    """POST to the login endpoint from ``ip``"""
    return client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password, **extra},
        environ_base={"REMOTE_ADDR": ip},
    )
