# server/app.py
# Flask serves ./public at the URL root, the index page at /, and the /_api sub-application

from flask import render_template

# ---------------------- Import strategy (works in BOTH launch modes) ----------------------
# If launched with:  gunicorn --chdir server app:app
#   -> this module is loaded as a *top-level* module (no package), so use absolute imports.
# If launched with:  gunicorn server.app:app
#   -> this module is loaded as part of the 'server' package, so use relative imports.
if __package__ in (None, ""):
    from config import app, settings
    from observability import (
        init_logging,
        register_request_id,
        register_latency_logging,
        register_error_handlers,
    )
    from security import build_default_policy, register_security_headers
    from routes.api import api_bp
else:
    from .config import app, settings
    from .observability import (
        init_logging,
        register_request_id,
        register_latency_logging,
        register_error_handlers,
    )
    from .security import build_default_policy, register_security_headers
    from .routes.api import api_bp
# ------------------------------------------------------------------------------------------------

# ---------------------- Cross-cutting initialization ----------------------
init_logging(app)
register_request_id(app)
register_latency_logging(app)
register_error_handlers(app)
register_security_headers(app, build_default_policy(hsts_enabled=settings.hsts_enabled))

app.register_blueprint(api_bp, url_prefix="/_api")
# -------------------------------------------------------------------------


@app.route("/", methods=["GET"])
def index():
    return render_template("index.html")


def main() -> None:
    app.logger.info(
        "Your app is listening on port %s",
        settings.port,
        extra={"event": "server.start", "port": settings.port},
    )
    app.run(host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    # Local dev convenience; production uses gunicorn
    main()
