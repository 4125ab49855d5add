"""HTTP helper utilities shared across the application wiring."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Mapping, Optional

from fastapi import Request
from fastapi.responses import FileResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException
from starlette.types import Scope


INDEX_DOCUMENT = "index.html"
FALLBACK_CACHE_CONTROL = "public, max-age=0"


class SPAStaticFiles(StaticFiles):
    """Serve the public directory, answering unknown paths with the SPA entry document.

    When ``max_age`` is set every file found on disk is sent with a long-lived
    ``Cache-Control`` header. The fallback document is never cached so that
    clients pick up new builds.
    """

    def __init__(self, directory: Path, *, max_age: Optional[int] = None) -> None:
        super().__init__(directory=directory, html=True, check_dir=False)
        self.index_path = Path(directory) / INDEX_DOCUMENT
        self.max_age = max_age

    def file_response(self, *args, **kwargs) -> Response:
        response = super().file_response(*args, **kwargs)
        if self.max_age is not None:
            response.headers["Cache-Control"] = f"public, max-age={self.max_age}"
        return response

    async def get_response(self, path: str, scope: Scope) -> Response:
        try:
            return await super().get_response(path, scope)
        except HTTPException as exc:
            if exc.status_code != 404:
                raise
        if not self.index_path.is_file():
            raise HTTPException(status_code=404)
        return FileResponse(
            self.index_path,
            media_type="text/html",
            headers={"Cache-Control": FALLBACK_CACHE_CONTROL},
        )


def _clf_timestamp() -> str:
    return time.strftime("%d/%b/%Y:%H:%M:%S +0000", time.gmtime())


def combined_log_line(request: Request, status_code: int, headers: Mapping[str, str]) -> str:
    """Render one request in the Apache combined log format."""
    remote_addr = request.client.host if request.client else "-"
    url = request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"
    http_version = request.scope.get("http_version", "1.1")
    length = headers.get("content-length", "-")
    referrer = request.headers.get("referer", "-")
    user_agent = request.headers.get("user-agent", "-")
    return (
        f'{remote_addr} - - [{_clf_timestamp()}] "{request.method} {url} HTTP/{http_version}" '
        f'{status_code} {length} "{referrer}" "{user_agent}"'
    )
