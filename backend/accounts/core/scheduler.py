"""
Background scheduler for periodic tasks.

This module manages background jobs that run on a schedule:
- Purge expired password reset tokens: runs every RESET_TOKEN_PURGE_MINUTES
"""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from pymongo.database import Database
from pymongo.errors import PyMongoError
from accounts.core.config import settings
from accounts.core.database import get_database
from accounts.repositories.base import utcnow
from accounts.repositories.users import UserRepository
import logging

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def purge_expired_reset_tokens_job(db: Database | None = None) -> int:
    """
    Clear reset token and expiry on users whose token has expired.

    Expired tokens are already rejected by reset-password; this keeps the
    stored state in line with that (both fields cleared together).
    """
    db = db if db is not None else get_database()
    try:
        purged = UserRepository(db).purge_expired_reset_tokens(utcnow())
    except PyMongoError as e:
        # Next run retries - a failed purge leaves only already-unusable tokens behind
        logger.error(f"Error in purge_expired_reset_tokens_job: {str(e)}")
        return 0

    if purged > 0:
        logger.info(f"Purge job completed: cleared {purged} expired reset token(s)")
    else:
        logger.debug("Purge job completed: no expired reset tokens found")
    return purged


def start_scheduler():
    """
    Start the background scheduler.

    This should be called when the FastAPI app starts.
    """
    if not scheduler.running:
        scheduler.add_job(
            purge_expired_reset_tokens_job,
            trigger=IntervalTrigger(minutes=settings.RESET_TOKEN_PURGE_MINUTES),
            id="purge_expired_reset_tokens",
            name="Purge expired reset tokens",
            replace_existing=True
        )

        scheduler.start()
        logger.info(
            f"Background scheduler started. Reset token purge scheduled every "
            f"{settings.RESET_TOKEN_PURGE_MINUTES} minutes."
        )


def stop_scheduler():
    """
    Stop the background scheduler.

    This should be called when the FastAPI app shuts down.
    """
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Background scheduler stopped.")
