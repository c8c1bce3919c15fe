"""Flask application factory."""

import logging
import os
from flask import Flask
from flask_cors import CORS

from app.models import db

DEFAULT_JWT_SECRET = "default-secret-key-change-in-production"


def load_settings(app):
    """Load settings from environment variables into app.config."""
    app.config.from_mapping(
        SQLALCHEMY_DATABASE_URI=os.environ.get("DATABASE_URL", "sqlite:///daylog.db"),
        JWT_SECRET=os.environ.get("JWT_SECRET", DEFAULT_JWT_SECRET),
        REDMINE_URL=os.environ.get("REDMINE_API_URL", ""),
        REDMINE_API_KEY=os.environ.get("REDMINE_API_KEY", ""),
        REDMINE_USERNAME=os.environ.get("REDMINE_USERNAME", ""),
        REDMINE_PASSWORD=os.environ.get("REDMINE_PASSWORD", ""),
        REDMINE_TIMEOUT=float(os.environ.get("REDMINE_TIMEOUT", 8)),
        REDMINE_BATCH_TIMEOUT=float(os.environ.get("REDMINE_BATCH_TIMEOUT", 45)),
        REDMINE_MAX_CONNECTIONS=int(os.environ.get("REDMINE_MAX_CONNECTIONS", 6)),
        REDMINE_USER_CACHE_TTL=float(os.environ.get("REDMINE_USER_CACHE_TTL", 3600)),
        LOG_LEVEL=os.environ.get("LOG_LEVEL", "INFO"),
    )


def configure_logging(app):
    level = getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO)
    app.logger.setLevel(level)
    logging.getLogger("services").setLevel(level)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(name)s] %(levelname)s: %(message)s"
        )


def create_app(test_config=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)

    load_settings(app)
    if test_config is not None:
        app.config.update(test_config)

    configure_logging(app)

    if app.config["JWT_SECRET"] == DEFAULT_JWT_SECRET:
        app.logger.warning("JWT_SECRET not set, using the development default")
    if not app.config["REDMINE_URL"]:
        app.logger.info("REDMINE_API_URL not set, reports will use daylog data only")

    # Enable CORS for frontend
    CORS(app, resources={
        r"/api/*": {
            "origins": ["http://localhost:3000", "http://127.0.0.1:3000"],
            "methods": ["GET", "PATCH", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "supports_credentials": True
        }
    })

    db.init_app(app)
    with app.app_context():
        db.create_all()

    # Register blueprints
    from app.api import reports, teams
    app.register_blueprint(reports.bp)
    app.register_blueprint(teams.bp)

    # Health check endpoint
    @app.route("/health")
    def health():
        return {"status": "ok"}

    return app
