import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class PasswordResetNotifier(Protocol):
    """Delivers a password reset link to the user out-of-band"""

    def send_password_reset(self, user: dict[str, Any], reset_url: str) -> None:
        ...


class LoggingNotifier:
    """
    Default notifier - records the dispatch instead of sending mail.

    Email delivery is provided by deployments through the get_notifier
    dependency; any exception raised by a notifier is treated as a failed dispatch.
    """

    def send_password_reset(self, user: dict[str, Any], reset_url: str) -> None:
        logger.info(f"Password reset requested for {user.get('email')}")
        logger.debug(f"Password reset link: {reset_url}")


_notifier: PasswordResetNotifier = LoggingNotifier()


def get_notifier() -> PasswordResetNotifier:
    """FastAPI dependency returning the configured notifier"""
    return _notifier
