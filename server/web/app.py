"""FastAPI application serving a single-page application and its API.

Requests are compressed, access-logged in the combined format and, when the
server sits behind a proxy, attributed to the forwarded client address.
Anything that is neither an API route nor a file in the public directory
receives the SPA entry document so client-side routing can take over.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import PlainTextResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from server.api.routes import configure_api_routes
from server.web.config import Settings, load_settings
from server.web.logs import VERBOSE
from server.web.utils import SPAStaticFiles, combined_log_line


APP_TITLE = "SPA Application Server"
APP_DESCRIPTION = "Serves the compiled single-page application and its HTTP API."
COMPRESSION_MIN_SIZE = 1024
DEV_SERVER_MESSAGE = (
    "You are not running this application via webpack-dev-server. Browse to "
    "this application using the webpack-dev-server port to enable webpack support"
)

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("server.web.access")


def configure_routes(app: FastAPI, settings: Settings) -> None:
    @app.get("/socket.io{rest:path}", include_in_schema=False)
    def dev_server_socket(rest: str) -> PlainTextResponse:
        """Reject live-reload traffic meant for the webpack-dev-server."""
        logger.warning(DEV_SERVER_MESSAGE)
        return PlainTextResponse(DEV_SERVER_MESSAGE, status_code=502)

    max_age = settings.static_max_age if settings.static_caching else None
    app.mount(
        "/",
        SPAStaticFiles(settings.public_dir, max_age=max_age),
        name="public",
    )


def create_app(settings: Settings) -> FastAPI:
    app = FastAPI(
        title=APP_TITLE,
        description=APP_DESCRIPTION,
        version="0.1.0",
        debug=not settings.production,
    )
    app.state.settings = settings
    app.add_middleware(GZipMiddleware, minimum_size=COMPRESSION_MIN_SIZE)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        response = await call_next(request)
        access_logger.log(VERBOSE, combined_log_line(request, response.status_code, response.headers))
        return response

    if settings.trust_proxy:
        app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    # API routes must be registered before the catch-all static mount.
    configure_api_routes(app, settings)
    configure_routes(app, settings)
    return app


app = create_app(load_settings())
