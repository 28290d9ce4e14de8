import os
import logging
from logging.handlers import RotatingFileHandler
from time import perf_counter

from flask import Flask, request, g, jsonify
from dotenv import load_dotenv
from sqlalchemy import text

from controllers.checkout import checkout_bp
from models.base import init_engine_and_session, Base
from models.currency_store import seed_default_currencies
from services.klarna.errors import ConfigurationError, InvalidArgument, InvalidState
from services.klarna.registry import EXTENSION_KEY, make_registry
from services.metrics import init_app as init_metrics, observe_request

# .env is read once, at import; real environment variables win
load_dotenv()

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _env_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).strip().lower() in ("1", "true", "yes", "on")


def _log_handler() -> logging.Handler:
    if _env_bool("LOG_TO_STDOUT", True):
        return logging.StreamHandler()
    log_dir = os.getenv("LOG_DIR") or os.path.join(os.path.dirname(__file__), "log")
    try:
        os.makedirs(log_dir, exist_ok=True)
        return RotatingFileHandler(
            os.path.join(log_dir, "checkout.log"),
            maxBytes=5 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
    except OSError:
        # read-only filesystem: stdout is better than nothing
        return logging.StreamHandler()


def configure_logging(app: Flask) -> None:
    level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    handler = _log_handler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.setLevel(level)
    # create_app may run more than once per process (tests, reloader)
    root.handlers.clear()
    root.addHandler(handler)
    app.logger.setLevel(level)


def register_error_handlers(app: Flask) -> None:
    def _json_error(status: int, message: str):
        app.logger.warning("%s %s %s: %s", status, request.method, request.path, message)
        return jsonify(error=message), status

    @app.errorhandler(InvalidArgument)
    def invalid_argument(e):
        return _json_error(400, str(e))

    @app.errorhandler(InvalidState)
    def invalid_state(e):
        return _json_error(409, str(e))

    @app.errorhandler(ConfigurationError)
    def configuration_error(e):
        app.logger.error("500 %s %s: Klarna configuration problem: %s",
                         request.method, request.path, e)
        return jsonify(error="Payment gateway is misconfigured."), 500

    @app.errorhandler(404)
    def not_found(e):
        return _json_error(404, "not found")

    @app.errorhandler(405)
    def not_allowed(e):
        return _json_error(405, "method not allowed")


def register_request_hooks(app: Flask) -> None:
    @app.before_request
    def _start_timer():
        g._t0 = perf_counter()

    @app.after_request
    def _access_log(resp):
        try:
            elapsed = perf_counter() - getattr(g, "_t0", perf_counter())
            app.logger.info("%s %s %s %s %.1fms", request.remote_addr, request.method,
                            request.full_path.rstrip("?"), resp.status_code, elapsed * 1000)
            if not request.path.startswith("/metrics"):
                observe_request(request.endpoint, request.method, resp.status_code, elapsed)
        except Exception:
            app.logger.exception("Failed to log request")
        return resp


def register_health(app: Flask) -> None:
    @app.get("/healthz")
    def healthz():
        return jsonify(status="ok"), 200

    @app.get("/readyz")
    def readyz():
        # ready = the database answers
        try:
            engine, _ = init_engine_and_session()
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            app.logger.exception("Readiness check failed")
            return jsonify(status="error", error=str(e)), 500
        return jsonify(status="ok"), 200


def create_app(test_config: dict | None = None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_mapping(
        APP_ENV=os.getenv("APP_ENV", "development").lower(),
        SITE_BASE_URL=os.getenv("SITE_BASE_URL", ""),
        STORE_NAME=os.getenv("STORE_NAME", "Store"),
        KLARNA_REGISTRY_MAX=int(os.getenv("KLARNA_REGISTRY_MAX", "8")),
    )
    if test_config:
        app.config.update(test_config)

    configure_logging(app)

    engine, _Session = init_engine_and_session()
    if _env_bool("AUTO_CREATE_SCHEMA", True):
        Base.metadata.create_all(engine, checkfirst=True)
        added = seed_default_currencies()
        if added:
            app.logger.info("Seeded %d currencies", added)

    # one gateway (and HTTP pool) per distinct Klarna configuration
    with app.app_context():
        app.extensions[EXTENSION_KEY] = make_registry()

    app.register_blueprint(checkout_bp)
    if _env_bool("METRICS_ENABLED", True):
        init_metrics(app)

    register_error_handlers(app)
    register_request_hooks(app)
    register_health(app)
    return app


if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "8000")),
            debug=(app.config["APP_ENV"] != "production"))
