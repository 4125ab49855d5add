"""Shared fixtures: a throwaway public directory and settings pointing at it."""

import socket
from pathlib import Path

import pytest

from server.web.config import Settings, load_settings


INDEX_HTML = "<!DOCTYPE html><html><body><div id=\"root\"></div></body></html>"
BUNDLE_JS = "console.log('bundle');\n" * 200


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def port() -> int:
    return free_port()


@pytest.fixture
def public_dir(tmp_path: Path) -> Path:
    root = tmp_path / "public"
    (root / "assets").mkdir(parents=True)
    (root / "index.html").write_text(INDEX_HTML, encoding="utf-8")
    (root / "bundle.js").write_text(BUNDLE_JS, encoding="utf-8")
    (root / "assets" / "logo.txt").write_text("logo", encoding="utf-8")
    return root


@pytest.fixture
def make_settings(public_dir: Path):
    def _make(**environ: str) -> Settings:
        environ.setdefault("PUBLIC_DIR", str(public_dir))
        return load_settings(environ)

    return _make
