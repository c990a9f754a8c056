"""Database utility functions."""

import logging

import rollbar
from sqlalchemy.exc import SQLAlchemyError

from authguard.errors import InternalError

logger = logging.getLogger(__name__)


def commit_or_fail(action):
    """Commit the current session.

    On any database error the session is rolled back, the error is reported to
    Rollbar and :class:`InternalError` is raised, so callers fail closed.

    Args:
        action: Short description of the change, used in the log message
    """
    # Import db here to avoid circular imports
    from authguard import db

    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"[DB]: Error while {action}: {e}")
        rollbar.report_exc_info()
        raise InternalError() from e
