import sys
import logging
from flask import Flask
from dotenv import load_dotenv


def create_app(config: dict | None = None):
    load_dotenv()
    from . import config as settings

    app = Flask(__name__)
    app.config["WEBHOOK_REJECT_INVALID_HMAC"] = settings.WEBHOOK_REJECT_INVALID_HMAC
    app.config.update(config or {})

    # =========================================================
    # Logging: reuse gunicorn's handlers when running under it
    # =========================================================
    gunicorn_error = logging.getLogger("gunicorn.error")
    log = logging.getLogger("turum_bridge")
    if gunicorn_error.handlers:
        log.handlers = gunicorn_error.handlers
    elif not log.handlers:
        sh = logging.StreamHandler(sys.stdout)
        sh.setFormatter(logging.Formatter("[%(asctime)s][%(levelname)s] %(message)s", "%H:%M:%S"))
        log.addHandler(sh)
    app.logger.handlers = log.handlers
    app.logger.setLevel(logging.INFO)

    # =========================================================
    # Database
    # =========================================================
    if not app.config.get("SKIP_DB_INIT"):
        from .db.session import init_db
        init_db()

    # =========================================================
    # Blueprints & CLI
    # =========================================================
    from .routes.webhooks import bp as webhooks_bp
    from .routes.debug import bp as debug_bp
    from .commands import register_commands

    app.register_blueprint(webhooks_bp, url_prefix="/webhooks/shopify")
    app.register_blueprint(debug_bp, url_prefix="/debug")
    register_commands(app)

    # =========================================================
    # Health check
    # =========================================================
    @app.get("/health")
    def health():
        return {"ok": True}, 200

    return app
