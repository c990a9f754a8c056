from datetime import timedelta
import os
import logging

logger = logging.getLogger(__name__)

SETTINGS = {
    "logging": {"level": os.getenv("LOG_LEVEL", "INFO")},
    "service": {"port": int(os.getenv("PORT", "3000"))},
    "environment": {
        "ROLLBAR_SERVER_TOKEN": os.getenv("ROLLBAR_SERVER_TOKEN"),
        "CORS_ORIGINS": os.getenv("CORS_ORIGINS"),
    },
    "SQLALCHEMY_DATABASE_URI": os.getenv("DATABASE_URL")
    or (
        "postgresql://"
        + (os.getenv("DATABASE_ENV_POSTGRES_USER") or "postgres")
        + ":"
        + (os.getenv("DATABASE_ENV_POSTGRES_PASSWORD") or "postgres")
        + "@"
        + (os.getenv("DATABASE_PORT_5432_TCP_ADDR") or "localhost")
        + ":"
        + (os.getenv("DATABASE_PORT_5432_TCP_PORT") or "5432")
        + "/"
        + (os.getenv("DATABASE_ENV_POSTGRES_DB") or "postgres")
    ),
    "SECRET_KEY": os.getenv("SECRET_KEY"),
    "JWT_SECRET_KEY": os.getenv("JWT_SECRET_KEY") or os.getenv("SECRET_KEY"),
    # Session tokens are not renewable; there is no refresh token
    "JWT_ACCESS_TOKEN_EXPIRES": timedelta(
        hours=int(os.getenv("JWT_ACCESS_TOKEN_HOURS", "24"))
    ),
    "JWT_TOKEN_LOCATION": ["headers"],
    "REDIS_URL": os.getenv("REDIS_URL")
    or (
        "redis://"
        + (os.getenv("REDIS_PORT_6379_TCP_ADDR") or "localhost")
        + ":"
        + (os.getenv("REDIS_PORT_6379_TCP_PORT") or "6379")
    ),
    "TRUSTED_PROXY_COUNT": int(os.getenv("TRUSTED_PROXY_COUNT", "0")),
    "LOCKOUT": {
        "SOFT_LOCK_ATTEMPTS": int(os.getenv("SOFT_LOCK_ATTEMPTS", "3")),
        "HARD_LOCK_ATTEMPTS": int(os.getenv("HARD_LOCK_ATTEMPTS", "5")),
        "LOCK_DURATION_MINUTES": int(os.getenv("LOCK_DURATION_MINUTES", "30")),
    },
    "PASSWORDS": {
        "BCRYPT_ROUNDS": int(os.getenv("BCRYPT_ROUNDS", "12")),
        "HISTORY_SIZE": int(os.getenv("PASSWORD_HISTORY_SIZE", "5")),
        # Concurrent bcrypt operations; defaults to the CPU count
        "MAX_CONCURRENT_HASHES": int(os.getenv("MAX_CONCURRENT_HASHES", "0")),
    },
    "TWO_FACTOR": {
        "ISSUER": os.getenv("TOTP_ISSUER", "Secure App"),
        "VALID_WINDOW": int(os.getenv("TOTP_VALID_WINDOW", "2")),
    },
    "GEOLOCATION": {
        "DATABASE_PATH": os.getenv("GEOIP_DATABASE_PATH"),
        "SUSPICIOUS_DISTANCE_KM": float(os.getenv("SUSPICIOUS_DISTANCE_KM", "1000")),
    },
    "ADMIN": {
        "EMAIL": os.getenv("ADMIN_EMAIL"),
        "PASSWORD": os.getenv("ADMIN_PASSWORD"),
    },
    # Rate limiting configuration
    "RATE_LIMITING": {
        "ENABLED": os.getenv("RATE_LIMITING_ENABLED", "true").lower() == "true",
        "STORAGE_URI": os.getenv("RATE_LIMIT_STORAGE_URI") or os.getenv("REDIS_URL"),
        # DEFAULT_LIMITS: Applied automatically to ALL endpoints (global fallback)
        "DEFAULT_LIMITS": [
            s.strip()
            for s in (
                os.getenv("DEFAULT_LIMITS") or "1000 per hour,100 per minute"
            ).split(",")
        ],
        "USER_CREATION_LIMITS": [
            s.strip()
            for s in (os.getenv("USER_CREATION_LIMITS") or "100 per hour").split(",")
        ],
        # Login attempts per client IP, counted before any credential check
        "LOGIN_WINDOW_MS": int(os.getenv("LOGIN_RATE_LIMIT_WINDOW_MS", "900000")),
        "LOGIN_MAX_ATTEMPTS": int(os.getenv("LOGIN_RATE_LIMIT_MAX", "5")),
    },
}


if not os.getenv("GEOIP_DATABASE_PATH"):
    logger.warning(
        "GEOIP_DATABASE_PATH is not set. Login locations will not be resolved "
        "and suspicious login detection will be disabled."
    )
