"""Application factory and blueprint registration."""

import importlib
import inspect
import logging
import pkgutil

from flask import Blueprint, Flask, jsonify

from .config import Config
from .utils.logger import init_logging
from .utils.sheet_cache import init_cache_registry


def create_app(overrides=None) -> Flask:
    """Create and configure the Flask application."""

    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    app.config.setdefault("CACHE_TTL_SECONDS", 15)
    app.config.setdefault("DEFAULT_GID", "0")
    app.json.ensure_ascii = False

    try:
        init_logging(app)
    except Exception:  # pragma: no cover - only hit during catastrophic logging failure
        logging.basicConfig(level=logging.INFO)
        app.logger.exception("init_logging failed; using basic logging fallback")

    if not app.config.get("PUBLIC_CSV_URL"):
        app.logger.warning("PUBLIC_CSV_URL is not configured; /api/stalls will answer 500")

    @app.get("/healthz")
    def healthz():
        """Lightweight liveness probe."""

        return "ok", 200

    # Blueprint auto-discovery ---------------------------------------------
    def register_all_blueprints() -> None:
        base_pkg = f"{__name__}.routes"
        pkg = importlib.import_module(base_pkg)

        for modinfo in pkgutil.iter_modules(pkg.__path__):
            name = f"{base_pkg}.{modinfo.name}"
            module = importlib.import_module(name)

            blueprints = [
                obj
                for _, obj in inspect.getmembers(module)
                if isinstance(obj, Blueprint)
            ]
            url_prefix = getattr(module, "URL_PREFIX", None)
            for bp in blueprints:
                prefix = url_prefix or f"/{modinfo.name}"
                app.register_blueprint(bp, url_prefix=prefix)
                app.logger.info("Registered %s at %s", bp.name, prefix)

    register_all_blueprints()
    init_cache_registry(app)

    # Minimal error handlers -----------------------------------------------
    @app.errorhandler(404)
    def _handle_404(error):
        return jsonify({"error": "not found"}), 404

    @app.errorhandler(500)
    def _handle_500(error):
        app.logger.exception("500: %s", error)
        return jsonify({"error": "internal server error"}), 500

    return app
