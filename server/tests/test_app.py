# server/tests/test_app.py
# Purpose: End-to-end checks against the wired app: index page, static files, /_api mount,
# and the security/request-id headers on every kind of response.

import logging

import pytest
from flask import Flask

from server import app as app_module
from server.observability import register_error_handlers, register_request_id
from server.security import build_default_policy, register_security_headers

# NOTE: We import the global Flask app as configured by the project.
# This keeps parity with production wiring (logging, headers, error handlers).
from server.app import app


@pytest.fixture(scope="module")
def client():
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c


def _assert_security_headers(resp):
    """Headers enforced by the security policy on every response."""
    assert resp.headers.get("X-Request-ID"), "Missing X-Request-ID header"
    assert resp.headers.get("X-Frame-Options") == "DENY"
    assert resp.headers.get("X-XSS-Protection") == "1; mode=block"
    assert resp.headers.get("X-Content-Type-Options") == "nosniff"
    assert resp.headers.get("X-Download-Options") == "noopen"
    assert resp.headers.get("X-DNS-Prefetch-Control") == "off"
    assert "no-store" in resp.headers.get("Cache-Control", "")
    assert "no-cache" in resp.headers.get("Cache-Control", "")
    assert resp.headers.get("Pragma") == "no-cache"
    assert resp.headers.get("Expires") == "0"
    csp = resp.headers.get("Content-Security-Policy") or ""
    assert "default-src 'self'" in csp
    assert "script-src 'self' trusted-cdn.com" in csp
    assert "Strict-Transport-Security" not in resp.headers
    assert "X-Powered-By" not in resp.headers


def test_index_returns_html(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.mimetype == "text/html"
    assert b"Information Security with HelmetJS" in resp.data
    _assert_security_headers(resp)


def test_index_is_stable(client):
    first = client.get("/")
    second = client.get("/")
    assert first.data == second.data


def test_static_asset_served_from_root(client):
    resp = client.get("/style.css")
    assert resp.status_code == 200
    assert resp.mimetype == "text/css"
    _assert_security_headers(resp)
    resp.close()


def test_api_health(client):
    resp = client.get("/_api/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}
    _assert_security_headers(resp)


def test_api_app_info_reports_policy(client):
    resp = client.get("/_api/app-info")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["headers"]["X-Frame-Options"] == "DENY"
    assert "Strict-Transport-Security" not in body["headers"]
    stack = body["appStack"]
    assert stack[0] == "helmet"
    assert stack[-1] == "disable"
    assert stack.index("frameguard") < stack.index("contentSecurityPolicy")


def test_hsts_absent_over_https(client):
    resp = client.get("/", base_url="https://localhost")
    assert resp.status_code == 200
    assert "Strict-Transport-Security" not in resp.headers


def test_api_404_is_json(client):
    resp = client.get("/_api/does-not-exist")
    assert resp.status_code == 404
    body = resp.get_json()
    assert body["code"] == 404
    assert body["request_id"] == resp.headers["X-Request-ID"]
    _assert_security_headers(resp)


def test_site_404_keeps_default_page_and_headers(client):
    resp = client.get("/missing-page.html")
    assert resp.status_code == 404
    assert not resp.is_json
    _assert_security_headers(resp)


# ---------------------------
# Unhandled exceptions (throwaway app so the global one keeps its routes fixed)
# ---------------------------

@pytest.fixture()
def failing_client():
    failing = Flask(__name__)
    register_request_id(failing)
    register_error_handlers(failing)
    register_security_headers(failing, build_default_policy())

    @failing.route("/_api/boom")
    def api_boom():
        raise RuntimeError("api exploded")

    @failing.route("/boom")
    def site_boom():
        raise RuntimeError("page exploded")

    with failing.test_client() as c:
        yield failing, c


def test_api_unhandled_exception_is_json_500(failing_client, caplog):
    failing, c = failing_client
    with caplog.at_level(logging.ERROR, logger=failing.logger.name):
        resp = c.get("/_api/boom")
    assert resp.status_code == 500
    assert resp.get_json() == {
        "error": "Internal Server Error",
        "code": 500,
        "request_id": resp.headers["X-Request-ID"],
    }
    _assert_security_headers(resp)
    logged = [r for r in caplog.records if r.getMessage() == "http.exception"]
    assert logged and logged[0].exc_info is not None


def test_site_unhandled_exception_uses_default_500_page(failing_client):
    _failing, c = failing_client
    resp = c.get("/boom")
    assert resp.status_code == 500
    assert not resp.is_json
    _assert_security_headers(resp)


# ---------------------------
# Startup
# ---------------------------

def test_main_logs_listening_port(monkeypatch, caplog):
    calls = {}
    monkeypatch.setattr(app_module.app, "run", lambda **kwargs: calls.update(kwargs))
    monkeypatch.setattr(app_module.app.logger, "propagate", True)  # JSON handler is stdout-only
    with caplog.at_level(logging.INFO, logger=app_module.app.logger.name):
        app_module.main()
    port = app_module.settings.port
    assert calls == {"host": "0.0.0.0", "port": port}
    assert any(r.getMessage() == f"Your app is listening on port {port}" for r in caplog.records)
