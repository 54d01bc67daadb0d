"""Flask application configuration and blueprint registration."""

from __future__ import annotations

from flask import Flask, jsonify

from llm_translator.logger import get_logger
from llm_translator.translation.engine import TranslationEngine

from .routes.translation import translation_bp

logger = get_logger(__name__)

ENGINE_EXTENSION = "translation_engine"


def build_app(engine: TranslationEngine) -> Flask:
    """Create and configure the Flask application around a running engine."""
    app = Flask(__name__)

    # Ensure JSON responses keep Unicode data.
    app.json.ensure_ascii = False
    app.extensions[ENGINE_EXTENSION] = engine

    register_blueprints(app)
    register_default_routes(app)

    return app


def register_blueprints(app: Flask) -> None:
    """Register Flask blueprints."""
    app.register_blueprint(translation_bp, url_prefix="/api")


def register_default_routes(app: Flask) -> None:
    """Register health route and JSON error handlers."""

    @app.get("/health")
    def health_check():
        logger.debug("Health check requested")
        return jsonify({"status": "ok"})

    @app.errorhandler(404)
    def page_not_found(e):
        return jsonify({"error": "Not found", "code": "not_found"}), 404

    @app.errorhandler(500)
    def internal_error(e):
        logger.exception("Internal server error: %s", e)
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500
