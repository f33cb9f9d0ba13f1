import logging
import sys


def setup_logging(level: str | int | None = None) -> None:
    """
    Initialize the root logger once with a stdout stream handler.

    Level falls back to settings.LOG_LEVEL, then INFO.
    Safe to call repeatedly - only the level is updated after the first call.
    """
    if level is None:
        from accounts.core.config import settings

        level = settings.LOG_LEVEL

    if isinstance(level, str):
        name = level.strip().upper()
        desired_level = int(name) if name.isdigit() else logging.getLevelName(name)
        if not isinstance(desired_level, int):
            desired_level = logging.INFO
    else:
        desired_level = level

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        root.addHandler(handler)
        logging.captureWarnings(True)
    root.setLevel(desired_level)
