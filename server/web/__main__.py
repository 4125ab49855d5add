"""Standalone launcher for the application server.

Allows running `python -m server.web` to serve the SPA on the port derived
from ``APP_ENV`` (80 in production, 3000 otherwise) and drain cleanly on
SIGTERM.
"""

from __future__ import annotations

import asyncio
import logging
import sys

from server.web.app import create_app
from server.web.config import Settings, load_settings
from server.web.lifecycle import ServerLifecycle, ServerState
from server.web.logs import configure_logging


async def serve(settings: Settings) -> ServerState:
    lifecycle = ServerLifecycle(
        logging.getLogger("server.web"),
        host=settings.host,
        drain_timeout=settings.drain_timeout,
    )
    lifecycle.install_signal_handlers()
    lifecycle.start(create_app(settings), settings.port)
    return await lifecycle.wait_closed()


def main() -> int:
    settings = load_settings()
    configure_logging(settings.log_level)
    state = asyncio.run(serve(settings))
    return 1 if state is ServerState.FAILED else 0


if __name__ == "__main__":
    sys.exit(main())
