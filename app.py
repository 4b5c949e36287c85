from models.base import init_engine_and_session, Base
import os
import logging
from logging.handlers import RotatingFileHandler
from time import time

from flask import Flask, request, g, jsonify
from dotenv import load_dotenv
from sqlalchemy import text
from controllers.webhook import webhook_bp
from controllers.status import status_bp
from services.metrics import init_app as init_metrics, REQUEST_COUNT, REQUEST_LATENCY
from services.signature import SignatureVerifier
from services.payment_lookup import PaymentLookupClient, DEFAULT_BASE_URL
from services.storage import ObjectStorage
from services.asset_migration import AssetMigrator
from services.reconciliation import ReconciliationEngine

# --- Load .env exactly once, here ---
# If you run "python app.py", this ensures variables are loaded.
# If you use "flask run", Flask will also load .env automatically (when python-dotenv is installed).
load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).strip().lower() in ("1", "true", "yes", "on")


def _configure_logging(app: Flask) -> None:
    # default on in containers
    log_to_stdout = os.getenv("LOG_TO_STDOUT", "1") == "1"
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    if log_to_stdout:
        handler = logging.StreamHandler()
    else:
        log_dir = os.path.join(os.path.dirname(__file__), "log")
        try:
            os.makedirs(log_dir, exist_ok=True)
            handler = RotatingFileHandler(
                os.path.join(log_dir, "app.log"),
                maxBytes=5 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
        except OSError:
            # If file logging fails (e.g., in a container), fall back to stdout
            handler = logging.StreamHandler()

    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s"
    ))

    # avoid duplicate handlers on reload
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    app.logger.setLevel(logging.INFO)


def build_engine(cfg) -> tuple[SignatureVerifier, ReconciliationEngine]:
    """Wire collaborators from config; secrets are passed in, never read globally."""
    verifier = SignatureVerifier(cfg.get("MP_WEBHOOK_SECRET") or "")
    lookup = PaymentLookupClient(
        cfg.get("MP_ACCESS_TOKEN") or "",
        base_url=cfg.get("MP_API_BASE_URL") or DEFAULT_BASE_URL,
        timeout=float(cfg.get("PAYMENT_LOOKUP_TIMEOUT", 10)),
    )
    migrator = AssetMigrator(
        ObjectStorage.from_config(cfg),
        cfg.get("ASSET_PUBLIC_BASE_URL") or "",
        max_workers=int(cfg.get("ASSET_MIGRATION_WORKERS", 8)),
    )
    return verifier, ReconciliationEngine(lookup, migrator)


def create_app(test_config: dict | None = None):
    app = Flask(__name__, instance_relative_config=True)

    # ---- Base config from environment (no hardcoded secrets) ----
    APP_ENV = os.getenv("APP_ENV", "development").lower()

    secret_key = os.getenv("FLASK_SECRET_KEY")
    if not secret_key and APP_ENV == "production":
        raise RuntimeError("FLASK_SECRET_KEY must be set in production (.env)")
    if not secret_key:
        secret_key = os.urandom(32)  # dev-only fallback

    app.config.from_mapping(
        SECRET_KEY=secret_key,
        APP_ENV=APP_ENV,

        # Payment provider
        MP_ACCESS_TOKEN=os.getenv("MP_ACCESS_TOKEN", ""),
        MP_WEBHOOK_SECRET=os.getenv("MP_WEBHOOK_SECRET", ""),
        MP_API_BASE_URL=os.getenv("MP_API_BASE_URL", DEFAULT_BASE_URL),
        PAYMENT_LOOKUP_TIMEOUT=float(os.getenv("PAYMENT_LOOKUP_TIMEOUT", "10")),

        # Photo storage (S3 API)
        STORAGE_BUCKET=os.getenv("STORAGE_BUCKET", "photos"),
        STORAGE_ENDPOINT_URL=os.getenv("STORAGE_ENDPOINT_URL"),
        STORAGE_REGION=os.getenv("STORAGE_REGION", "auto"),
        STORAGE_ACCESS_KEY_ID=os.getenv("STORAGE_ACCESS_KEY_ID"),
        STORAGE_SECRET_ACCESS_KEY=os.getenv("STORAGE_SECRET_ACCESS_KEY"),
        STORAGE_CONNECT_TIMEOUT=float(os.getenv("STORAGE_CONNECT_TIMEOUT", "5")),
        STORAGE_READ_TIMEOUT=float(os.getenv("STORAGE_READ_TIMEOUT", "30")),
        ASSET_PUBLIC_BASE_URL=os.getenv(
            "ASSET_PUBLIC_BASE_URL", "http://localhost:8000/file"),
        ASSET_MIGRATION_WORKERS=int(os.getenv("ASSET_MIGRATION_WORKERS", "8")),
    )
    if test_config:
        app.config.update(test_config)

    if app.config["APP_ENV"] == "production":
        for key in ("MP_ACCESS_TOKEN", "MP_WEBHOOK_SECRET"):
            if not app.config.get(key):
                raise RuntimeError(f"{key} must be set in production (.env)")

    # ---- Logging ----
    _configure_logging(app)

    # Ensure instance folder exists
    os.makedirs(app.instance_path, exist_ok=True)

    # ---- DB init ----
    engine, _Session = init_engine_and_session()
    if _env_bool("AUTO_CREATE_SCHEMA", True):
        Base.metadata.create_all(engine, checkfirst=True)

    # ---- Collaborators ----
    verifier, reconciliation_engine = build_engine(app.config)
    app.extensions["signature_verifier"] = verifier
    app.extensions["reconciliation_engine"] = reconciliation_engine

    # ---- Blueprints ----
    app.register_blueprint(webhook_bp)
    app.register_blueprint(status_bp)

    # Prometheus
    if _env_bool("METRICS_ENABLED", True):
        init_metrics(app)

    # ---- Errors ----

    @app.errorhandler(404)
    def not_found(e):
        app.logger.warning("404 %s %s", request.method, request.path)
        return jsonify(message="not found", path=request.path), 404

    @app.errorhandler(405)
    def not_allowed(e):
        app.logger.warning("405 %s %s", request.method, request.path)
        return jsonify(message="method not allowed", path=request.path), 405

    @app.errorhandler(500)
    def internal_error(e):
        app.logger.error("500 %s %s", request.method, request.path)
        return jsonify(message="internal server error"), 500

    @app.before_request
    def _start_timer():
        g._t0 = time()

    @app.after_request
    def _log_request(resp):
        try:
            ms = (time() - getattr(g, "_t0", time())) * 1000
            app.logger.info("%s %s %s %s %.1fms",
                            request.remote_addr, request.method, request.full_path, resp.status_code, ms)

            # --- Skip self-scrapes to keep series clean ---
            ep = request.endpoint or ""
            path = request.path or ""
            if path.startswith("/metrics"):
                return resp

            endpoint = ep.replace(".", "_") or "unknown"
            REQUEST_COUNT.labels(
                method=request.method, endpoint=endpoint, status=str(resp.status_code)).inc()
            REQUEST_LATENCY.labels(
                endpoint=endpoint, method=request.method).observe(ms / 1000.0)
        except Exception:
            app.logger.exception("Failed to log request")
        return resp

    @app.get("/healthz")
    def healthz():
        # Liveness: process is up, Flask can serve a simple request
        return jsonify(status="ok"), 200

    @app.get("/readyz")
    def readyz():
        # Readiness: app can talk to the DB
        try:
            engine, _ = init_engine_and_session()
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return jsonify(status="ok"), 200
        except Exception as e:
            app.logger.exception("Readiness check failed")
            return jsonify(status="error", error=str(e)), 500

    return app


if __name__ == "__main__":
    # TIP: use APP_ENV=production FLASK_SECRET_KEY=... when deploying
    app = create_app()
    app.run(host="0.0.0.0", port=8000, debug=(
        app.config["APP_ENV"] != "production"))
