# server/observability.py
# Cross-cutting concerns: JSON logging, request IDs, latency logging, error JSON for /_api/*

import sys
import time
import logging
from uuid import uuid4
from typing import Any, Dict

from flask import g, request, jsonify
from werkzeug.exceptions import HTTPException, InternalServerError
from pythonjsonlogger import jsonlogger

if __package__ in (None, ""):  # top-level launch: gunicorn --chdir server app:app
    from schemas import ErrorResponse
else:
    from .schemas import ErrorResponse

API_PREFIX = "/_api"


def _json_formatter() -> logging.Formatter:
    return jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s "
        "%(request_id)s %(method)s %(path)s %(status)s %(latency_ms)s "
        "%(remote_ip)s %(user_agent)s %(event)s %(header)s %(port)s"
    )


def init_logging(app) -> None:
    if app.config.get("_OBS_LOGGING_INIT", False):
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_json_formatter())
    app.logger.handlers.clear()
    app.logger.addHandler(handler)
    app.logger.setLevel(logging.INFO)
    app.logger.propagate = False
    app.config["_OBS_LOGGING_INIT"] = True


def register_request_id(app) -> None:
    if app.config.get("_OBS_REQID_INIT", False):
        return

    @app.before_request
    def _before_request():
        g.request_id = str(uuid4())
        g._start_time = time.monotonic()

    @app.after_request
    def _after_request(resp):
        resp.headers["X-Request-ID"] = getattr(g, "request_id", "")
        return resp

    app.config["_OBS_REQID_INIT"] = True


def _access_record(resp) -> Dict[str, Any]:
    start = getattr(g, "_start_time", None)
    return {
        "request_id": getattr(g, "request_id", None),
        "method": request.method,
        "path": request.path,
        "status": resp.status_code,
        "latency_ms": int((time.monotonic() - start) * 1000) if start else None,
        "remote_ip": request.headers.get("X-Forwarded-For", request.remote_addr),
        "user_agent": request.user_agent.string if request.user_agent else None,
        "event": "http.access",
    }


def register_latency_logging(app) -> None:
    if app.config.get("_OBS_LATENCY_INIT", False):
        return

    @app.after_request
    def _access_log(resp):
        app.logger.info("http.access", extra=_access_record(resp))
        return resp

    app.config["_OBS_LATENCY_INIT"] = True


def _is_api_path() -> bool:
    return request.path == API_PREFIX or request.path.startswith(API_PREFIX + "/")


def _error_payload(message: str, code: int) -> Dict[str, Any]:
    """Unified error body for the /_api surface."""
    return ErrorResponse(
        error=message,
        code=code,
        request_id=getattr(g, "request_id", None),
    ).model_dump()


def register_error_handlers(app) -> None:
    """
    JSON error bodies for /_api/*. Everything else keeps Flask's default HTML
    error pages; unhandled exceptions there become a plain 500.
    """
    if app.config.get("_OBS_ERRORS_INIT", False):
        return

    @app.errorhandler(HTTPException)
    def _http_exception(e: HTTPException):
        if not _is_api_path():
            return e
        payload = _error_payload(e.description or e.name, e.code)
        app.logger.warning("http.error", extra={"event": "http.error", **payload})
        return jsonify(payload), e.code

    @app.errorhandler(Exception)
    def _unhandled_exception(e: Exception):
        if not _is_api_path():
            return InternalServerError(original_exception=e)
        payload = _error_payload("Internal Server Error", 500)
        app.logger.error("http.exception", exc_info=True, extra={"event": "http.exception", **payload})
        return jsonify(payload), 500

    app.config["_OBS_ERRORS_INIT"] = True
