#!/usr/bin/env python3
"""
Database migration script
"""

import atexit
import logging
import os
import sys
import time

# Set up logging with more verbose output
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def cleanup():
    logger.info("Script is exiting...")
    sys.stdout.flush()
    sys.stderr.flush()


atexit.register(cleanup)


def wait_for_database(app):
    """Wait for database to be ready"""
    logger.info("Waiting for database to be ready...")

    from sqlalchemy import text
    from sqlalchemy.exc import OperationalError

    from authguard import db

    max_retries = 30
    retry_count = 0

    while retry_count < max_retries:
        try:
            with app.app_context(), db.engine.connect() as connection:
                connection.execute(text("SELECT 1")).fetchone()

            logger.info("Database is ready!")
            return True

        except OperationalError as e:
            retry_count += 1
            logger.info(
                f"Database not ready (attempt {retry_count}/{max_retries}): {e}"
            )
            time.sleep(2)

    raise RuntimeError("Database did not become ready within timeout period")


def run_migrations():
    """Run database migrations"""
    print("Running database migrations...")
    logger.info("Migration script started")

    from flask_migrate import upgrade

    from authguard import app

    wait_for_database(app)

    with app.app_context():
        upgrade(revision="head")

    logger.info("Flask-Migrate upgrade completed successfully")
    print("✓ Database migrations completed successfully")


def bootstrap_admin():
    """Create the administrator from ADMIN_EMAIL/ADMIN_PASSWORD when both are set"""
    email = os.getenv("ADMIN_EMAIL")
    password = os.getenv("ADMIN_PASSWORD")
    if not email or not password:
        logger.info("ADMIN_EMAIL/ADMIN_PASSWORD not set, skipping admin bootstrap")
        return

    from authguard import app
    from authguard.errors import EmailDuplicated
    from authguard.services import UserService

    with app.app_context():
        try:
            UserService.create_admin(email, password)
        except EmailDuplicated:
            logger.info(f"Admin user {email} already exists")
            return

    print(f"✓ Admin user {email} created")


if __name__ == "__main__":
    try:
        run_migrations()
    except Exception as e:
        print(f"✗ Migration failed: {e}")
        logger.exception("Migration failed")
        sys.exit(1)
    bootstrap_admin()
