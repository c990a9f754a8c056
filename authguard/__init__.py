"""The AuthGuard API MODULE"""

from datetime import datetime, UTC
import logging
import os
import sys

import click
from flask import Flask, got_request_exception, jsonify, request
from flask_compress import Compress
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
import rollbar
import rollbar.contrib.flask
from werkzeug.middleware.proxy_fix import ProxyFix

from authguard.config import SETTINGS
from authguard.utils.rate_limiting import (
    RateLimitConfig,
    get_user_id_or_ip,
    rate_limit_error_handler,
)

# Flask App
app = Flask(__name__)

# Respect trusted proxy configuration for accurate client IP detection
trusted_proxy_count = SETTINGS.get("TRUSTED_PROXY_COUNT", 0)
if trusted_proxy_count:
    app.wsgi_app = ProxyFix(  # type: ignore[assignment]
        app.wsgi_app,
        x_for=trusted_proxy_count,
        x_proto=trusted_proxy_count,
        x_host=trusted_proxy_count,
        x_port=trusted_proxy_count,
        x_prefix=trusted_proxy_count,
    )

# Configure CORS with specific origins for security
cors_origins = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:8080"
).split(",")
CORS(
    app,
    origins=cors_origins,
    allow_headers=["Content-Type", "Authorization"],
    methods=["GET", "POST", "OPTIONS"],
)

app.config["COMPRESS_MIMETYPES"] = ["application/json", "text/plain"]
app.config["COMPRESS_LEVEL"] = 6
app.config["COMPRESS_MIN_SIZE"] = 500

Compress(app)

logger = logging.getLogger()
log_level = SETTINGS.get("logging", {}).get("level", "INFO")
logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)

# Ensure all unhandled exceptions are logged, and reported to rollbar
formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
handler = logging.StreamHandler(stream=sys.stdout)
handler.setLevel(logging.INFO)
handler.setFormatter(formatter)
logger.addHandler(handler)

rollbar.init(os.getenv("ROLLBAR_SERVER_TOKEN"), os.getenv("ENVIRONMENT"))
with app.app_context():
    got_request_exception.connect(rollbar.contrib.flask.report_exception, app)


def validate_cors_origins():
    """Validate CORS origins to prevent security misconfigurations."""
    environment = os.getenv("ENVIRONMENT", "dev")
    logger.info(f"CORS origins for {environment}: {cors_origins}")

    if environment != "prod":
        return

    for origin in cors_origins:
        origin_lower = origin.lower()
        if "localhost" in origin_lower or "127.0.0.1" in origin_lower:
            raise ValueError(
                f"Security Error: Localhost origin '{origin}' not allowed in production"
            )

    if not cors_origins or cors_origins == [""]:
        raise ValueError(
            "Security Error: CORS_ORIGINS must be explicitly set in production"
        )


try:
    validate_cors_origins()
except ValueError as e:
    # In production, fail fast on CORS misconfiguration
    logger.critical(f"CORS validation failed: {e}")
    raise


@app.after_request
def set_security_headers(response):
    """Add security headers to all responses."""
    response.headers["Content-Security-Policy"] = (
        "default-src 'none'; frame-ancestors 'none'"
    )
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Cache-Control"] = "no-store"

    if os.getenv("ENVIRONMENT") == "prod" or request.is_secure:
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains; preload"
        )

    response.headers["Cross-Origin-Opener-Policy"] = "same-origin"
    response.headers["Cross-Origin-Resource-Policy"] = "same-origin"
    return response


app.config["SQLALCHEMY_DATABASE_URI"] = SETTINGS.get("SQLALCHEMY_DATABASE_URI")
app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

# Pool sizing only applies to server databases, SQLite uses its own pool
if app.config["SQLALCHEMY_DATABASE_URI"].startswith("postgresql"):
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
        # Recycle connections after 1 hour to prevent stale connections
        "pool_recycle": 3600,
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": 30,
    }

app.config["TESTING"] = SETTINGS.get("TESTING", False)
app.config["RATE_LIMITING"] = SETTINGS.get("RATE_LIMITING", {})

jwt_secret = SETTINGS.get("JWT_SECRET_KEY") or SETTINGS.get("SECRET_KEY")
if not jwt_secret:
    logger.warning("JWT_SECRET_KEY is not set; session tokens cannot be issued")

app.config["JWT_SECRET_KEY"] = jwt_secret
app.config["JWT_ACCESS_TOKEN_EXPIRES"] = SETTINGS.get("JWT_ACCESS_TOKEN_EXPIRES")
app.config["JWT_TOKEN_LOCATION"] = SETTINGS.get("JWT_TOKEN_LOCATION")

app.config["MAX_CONTENT_LENGTH"] = 1 * 1024 * 1024

# Database
db = SQLAlchemy(app)
migrate = Migrate(app, db)

# Rate Limiting (must be after db)
limiter = Limiter(
    app=app,
    key_func=get_user_id_or_ip,  # Administrators are exempt
    storage_uri=RateLimitConfig.get_storage_uri(),
    default_limits=RateLimitConfig.get_default_limits(),
    headers_enabled=True,
    enabled=RateLimitConfig.is_enabled(),
    on_breach=rate_limit_error_handler,
)

jwt = JWTManager(app)

# DB has to be ready!
from authguard.models import User  # noqa: E402
from authguard.routes.api.v1 import endpoints, error  # noqa: E402
from authguard.services import UserService  # noqa: E402

# Blueprint Flask Routing
app.register_blueprint(endpoints, url_prefix="/api/v1")

logger.info(f"Registered Flask app with {len(list(app.url_map.iter_rules()))} routes")


@app.route("/api/health", methods=["GET"])
def health_check():
    """Liveness check with database status"""
    db_status = "unknown"

    try:
        from sqlalchemy import text

        result = db.session.execute(text("SELECT 1 as health_check")).fetchone()
        db_status = "healthy" if result and result[0] == 1 else "unhealthy"
    except Exception as e:
        logger.warning(f"Database health check failed: {str(e)}")
        db_status = "unhealthy"

    return jsonify(
        {
            "status": "ok",
            "timestamp": datetime.now(UTC).isoformat(),
            "database": db_status,
        }
    ), 200


@jwt.user_lookup_loader
def user_lookup_callback(_jwt_header, jwt_data):
    identity = jwt_data["sub"]
    user = User.query.filter_by(id=identity).one_or_none()
    if user is None or not user.is_active:
        return None
    return user


@jwt.user_lookup_error_loader
def user_lookup_error_callback(_jwt_header, _jwt_data):
    return error(status=401, detail="Invalid or expired token")


@jwt.expired_token_loader
def expired_token_callback(_jwt_header, _jwt_data):
    return error(status=401, detail="Token has expired")


@jwt.invalid_token_loader
def invalid_token_callback(reason):
    return error(status=401, detail="Invalid or expired token")


@jwt.unauthorized_loader
def missing_token_callback(reason):
    return error(status=401, detail="Authorization required")


@app.cli.command("create-admin")
@click.option("--email", default=None, help="Defaults to ADMIN_EMAIL")
@click.option("--password", default=None, help="Defaults to ADMIN_PASSWORD")
def create_admin(email, password):
    """Create the administrator account (bootstrap)."""
    from authguard.errors import EmailDuplicated, ValidationError

    admin_settings = SETTINGS.get("ADMIN", {})
    email = email or admin_settings.get("EMAIL")
    password = password or admin_settings.get("PASSWORD")
    if not email:
        raise click.UsageError("Provide --email or set ADMIN_EMAIL")

    try:
        user, password_used = UserService.create_admin(email, password)
    except EmailDuplicated:
        click.echo(f"Admin user {email} already exists")
        return
    except ValidationError as e:
        raise click.UsageError(f"{e.message}: {'; '.join(e.errors)}") from e

    click.echo(f"Created admin user {user.email}")
    if not password:
        click.echo(f"Generated password: {password_used}")


@app.errorhandler(403)
def forbidden(e):
    return error(status=403, detail="Forbidden")


@app.errorhandler(404)
def page_not_found(e):
    return error(status=404, detail="Not Found")


@app.errorhandler(405)
def method_not_allowed(e):
    return error(status=405, detail="Method Not Allowed")


@app.errorhandler(413)
def request_entity_too_large(e):
    return error(status=413, detail="Request too large")


@app.errorhandler(500)
def internal_server_error(e):
    return error(status=500, detail="Internal Server Error")
