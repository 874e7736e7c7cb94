"""
Flask Application Factory - Card Show Ingestion Admin API

The HTTP surface is the admin review API only. Scraping, normalization,
geocoding and dedup run as batch invocations from the CLI (cli.py).

- Admin API requires an admin JWT (verified, never issued here)
- Standard error envelope with X-Request-ID on every response
- Health endpoint is public
"""

import logging
import os

from flask import Flask, jsonify
from flask_cors import CORS
from flask_migrate import Migrate
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from models.database import db

# Initialize Flask-Migrate (will be initialized in create_app)
migrate = Migrate()

LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"


def configure_logging(level: str = None) -> None:
    """Configure root logging once; every record carries the request id."""
    from api.middleware import RequestIdLogFilter

    root = logging.getLogger()
    root.setLevel(level or Config.LOG_LEVEL)
    if not any(getattr(h, "_card_shows", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(RequestIdLogFilter())
        handler._card_shows = True
        root.addHandler(handler)


def create_app(config_overrides: dict = None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app.config.get("LOG_LEVEL"))
    logger = logging.getLogger(__name__)

    CORS(app,
         resources={r"/api/*": {"origins": "*"}},
         methods=["GET", "POST", "PATCH", "OPTIONS"],
         allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
         expose_headers=["X-Request-ID"],
         supports_credentials=False)

    # === MIDDLEWARE ===
    from api.middleware import setup_error_handlers, setup_request_id_middleware
    setup_request_id_middleware(app)
    setup_error_handlers(app)

    # Initialize SQLAlchemy
    db.init_app(app)

    # Initialize Flask-Migrate for database migrations
    migrate.init_app(app, db)

    with app.app_context():
        # Import all models before create_all to ensure tables are created
        from models.geocode_cache import GeocodeCacheEntry  # noqa: F401
        from models.production_show import ProductionShow, ShowSeries  # noqa: F401
        from scrapers.models import AdminFeedback, PendingShow, PipelineRun, ScrapingSource  # noqa: F401

        env = (os.environ.get("APP_ENV") or os.environ.get("FLASK_ENV") or "").lower()
        is_prod = env in {"prod", "production"}
        allow_create = app.config.get("TESTING") or not is_prod
        if allow_create:
            db.create_all()
        else:
            logger.info("Production environment: schema managed by migrations (flask db upgrade)")

    # Register routes
    from routes.admin import admin_bp
    app.register_blueprint(admin_bp, url_prefix='/api/admin')

    @app.route("/api/health", methods=["GET"])
    def health():
        try:
            db.session.execute(text("SELECT 1"))
            database = "ok"
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Health check database error: {e}")
            database = "unavailable"
        status_code = 200 if database == "ok" else 503
        return jsonify({"status": "ok" if database == "ok" else "degraded", "database": database}), status_code

    return app


if __name__ == "__main__":
    app = create_app()
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port, debug=Config.DEBUG)
