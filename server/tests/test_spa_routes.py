"""Tests for static serving, the SPA fallback and request logging."""

import logging

from fastapi.testclient import TestClient

from server.web.app import DEV_SERVER_MESSAGE, create_app
from server.web.config import STATIC_MAX_AGE
from server.web.logs import VERBOSE
from server.web.utils import FALLBACK_CACHE_CONTROL


def test_static_asset_gets_long_lived_cache_header(make_settings) -> None:
    client = TestClient(create_app(make_settings()))
    response = client.get("/assets/logo.txt")
    assert response.status_code == 200
    assert response.text == "logo"
    assert response.headers["cache-control"] == f"public, max-age={STATIC_MAX_AGE}"


def test_development_serves_assets_without_cache_header(make_settings) -> None:
    client = TestClient(create_app(make_settings(APP_ENV="development")))
    response = client.get("/assets/logo.txt")
    assert response.status_code == 200
    assert "cache-control" not in response.headers


def test_root_serves_index_document(make_settings) -> None:
    client = TestClient(create_app(make_settings()))
    response = client.get("/")
    assert response.status_code == 200
    assert '<div id="root">' in response.text


def test_deep_link_falls_back_to_index(make_settings) -> None:
    client = TestClient(create_app(make_settings()))
    response = client.get("/settings/profile?tab=2")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert response.headers["cache-control"] == FALLBACK_CACHE_CONTROL
    assert '<div id="root">' in response.text


def test_missing_asset_also_falls_back_to_index(make_settings) -> None:
    client = TestClient(create_app(make_settings()))
    response = client.get("/assets/missing.js")
    assert response.status_code == 200
    assert '<div id="root">' in response.text


def test_missing_index_document_is_not_found(make_settings, public_dir) -> None:
    (public_dir / "index.html").unlink()
    client = TestClient(create_app(make_settings()))
    response = client.get("/somewhere")
    assert response.status_code == 404


def test_non_get_requests_are_rejected(make_settings) -> None:
    client = TestClient(create_app(make_settings()))
    response = client.post("/somewhere", json={})
    assert response.status_code == 405


def test_large_assets_are_compressed(make_settings) -> None:
    client = TestClient(create_app(make_settings()))
    response = client.get("/bundle.js", headers={"Accept-Encoding": "gzip"})
    assert response.status_code == 200
    assert response.headers["content-encoding"] == "gzip"
    assert response.text.startswith("console.log('bundle');")


def test_socket_io_requests_point_to_dev_server(make_settings, caplog) -> None:
    client = TestClient(create_app(make_settings()))
    with caplog.at_level(logging.WARNING, logger="server.web.app"):
        response = client.get("/socket.io/?EIO=3&transport=polling")
    assert response.status_code == 502
    assert response.text == DEV_SERVER_MESSAGE
    assert DEV_SERVER_MESSAGE in [record.getMessage() for record in caplog.records]


def test_requests_are_access_logged_with_forwarded_client(make_settings, caplog) -> None:
    client = TestClient(create_app(make_settings()))
    caplog.set_level(VERBOSE, logger="server.web.access")
    client.get(
        "/assets/logo.txt?v=1",
        headers={"X-Forwarded-For": "203.0.113.7", "User-Agent": "pytest-agent", "Referer": "http://example.com/"},
    )
    lines = [record.getMessage() for record in caplog.records if record.name == "server.web.access"]
    assert len(lines) == 1
    line = lines[0]
    assert line.startswith("203.0.113.7 - - [")
    assert '"GET /assets/logo.txt?v=1 HTTP/1.1" 200 4' in line
    assert line.endswith('"http://example.com/" "pytest-agent"')
    assert all(record.levelno == VERBOSE for record in caplog.records if record.name == "server.web.access")


def test_untrusted_proxy_headers_are_ignored(make_settings, caplog) -> None:
    client = TestClient(create_app(make_settings(TRUST_PROXY="0")))
    caplog.set_level(VERBOSE, logger="server.web.access")
    client.get("/", headers={"X-Forwarded-For": "203.0.113.7"})
    lines = [record.getMessage() for record in caplog.records if record.name == "server.web.access"]
    assert lines and not lines[0].startswith("203.0.113.7")
