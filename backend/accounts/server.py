"""Process entry point: python -m accounts.server (or the accounts-server script)"""

import asyncio
import sys

import uvicorn

from accounts.core.config import settings
from accounts.core.logging import setup_logging
from accounts.core.supervisor import Supervisor


def main() -> None:
    setup_logging()
    config = uvicorn.Config(
        "accounts.main:app",
        host=settings.HOST,
        port=settings.PORT,
        # Keep the root logger configured by setup_logging
        log_config=None,
    )
    supervisor = Supervisor(uvicorn.Server(config))
    sys.exit(asyncio.run(supervisor.serve()))


if __name__ == "__main__":
    main()
