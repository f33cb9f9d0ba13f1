"""
Top-level supervisor for the server process.

Failures that escape every request handler (an asyncio task nobody awaited, a
crashed worker thread) are logged and trigger an orderly shutdown: uvicorn
stops accepting connections, drains in-flight requests and runs the app's
lifespan shutdown (scheduler stop, Mongo client close). The process then
exits non-zero.
"""

import asyncio
import logging
import threading
from typing import Any

import uvicorn

logger = logging.getLogger(__name__)


class Supervisor:
    def __init__(self, server: uvicorn.Server) -> None:
        self.server = server
        self.crashed = False

    def _shutdown(self, reason: str, exc: BaseException | None) -> None:
        logger.critical(
            f"{reason} detected, shutting down the server...",
            exc_info=(type(exc), exc, exc.__traceback__) if exc is not None else None,
        )
        self.crashed = True
        self.server.should_exit = True

    def handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        """asyncio exception handler - called for errors no task awaited"""
        exc = context.get("exception")
        if exc is None:
            # Warnings without an exception (e.g. unclosed transports) are only logged
            logger.warning(context.get("message", "Unknown event loop error"))
            return
        self._shutdown("Unhandled task failure", exc)

    def handle_thread_exception(self, args: threading.ExceptHookArgs) -> None:
        if issubclass(args.exc_type, SystemExit):
            return
        self._shutdown(f"Uncaught exception in thread {getattr(args.thread, 'name', '?')}", args.exc_value)

    async def serve(self) -> int:
        """Run the server until it exits - returns the process exit code"""
        asyncio.get_running_loop().set_exception_handler(self.handle_loop_exception)
        threading.excepthook = self.handle_thread_exception

        await self.server.serve()

        if self.crashed or not self.server.started:
            return 1
        return 0
