import logging
import os

from flask import Flask, jsonify
from sqlalchemy import text

from engagement.config import Config
from engagement.errors import EngagementError
from engagement.extensions import db, migrate, cors
from engagement.services.registry import init_engagement
from engagement.segments.segment_points import points_bp, points_system_bp
from engagement.segments.segment_streaks import streaks_bp, streaks_system_bp
from engagement.segments.segment_leaderboards import leaderboards_bp, leaderboards_system_bp


def create_app(overrides: dict | None = None):
    app = Flask(__name__)

    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    env = (app.config.get("ENV_NAME") or "dev").strip().lower()

    # Production safety checks
    if env in ("prod", "production"):
        secret = (app.config.get("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16:
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")
        if not (os.getenv("DATABASE_URL") or "").strip() and not (os.getenv("SQLALCHEMY_DATABASE_URI") or "").strip():
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")

    app.logger.setLevel(getattr(logging, app.config.get("LOG_LEVEL", "INFO"), logging.INFO))

    # Ensure instance dir exists for SQLite paths
    if str(app.config["SQLALCHEMY_DATABASE_URI"]).startswith("sqlite:///") and ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
        os.makedirs(Config.INSTANCE_DIR, exist_ok=True)

    # CORS configuration
    cors_origins = (app.config.get("CORS_ORIGINS") or "").strip()
    if env in ("prod", "production"):
        origins = [o.strip() for o in cors_origins.split(",") if o.strip()]
    else:
        origins = ["*"] if not cors_origins else [o.strip() for o in cors_origins.split(",") if o.strip()]
    cors.init_app(app, resources={r"/api/*": {"origins": origins}})

    # Init extensions
    db.init_app(app)
    migrate.init_app(app, db)
    init_engagement(app)

    # Register API routes
    app.register_blueprint(points_bp)
    app.register_blueprint(points_system_bp)
    app.register_blueprint(streaks_bp)
    app.register_blueprint(streaks_system_bp)
    app.register_blueprint(leaderboards_bp)
    app.register_blueprint(leaderboards_system_bp)

    @app.errorhandler(EngagementError)
    def _engagement_error(e: EngagementError):
        if e.status_code >= 500:
            app.logger.error("%s: %s", e.code, e.message)
        return jsonify(e.to_dict()), e.status_code

    # Health check
    @app.get("/api/health")
    def health():
        db_state = "ok"
        try:
            db.session.execute(text("SELECT 1"))
        except Exception:
            db_state = "fail"
        return jsonify({
            "ok": True,
            "service": "engagement-ledger",
            "env": env,
            "db": db_state,
        })

    return app
