# server/routes/api.py
# Flask Blueprint: /_api/*, the small sub-application mounted next to the site.
# /_api/app-info reports which security headers the policy puts on responses.

from flask import Blueprint, current_app, jsonify, request

try:
    from ..schemas import AppInfo                                      # package mode
except ImportError:
    from schemas import AppInfo                                        # top-level mode

api_bp = Blueprint("api", __name__)


@api_bp.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "ok"}), 200


@api_bp.route("/app-info", methods=["GET"])
def app_info():
    """
    Returns { "headers": {...}, "appStack": [...] }: the security headers this
    request receives and the directive sources of the active policy, in order.
    """
    applier = current_app.extensions["security_headers"]
    info = AppInfo(
        headers=applier.security_headers(request),
        appStack=applier.policy.sources(),
    )
    return jsonify(info.model_dump())
