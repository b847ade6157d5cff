import os


def _normalize_database_url(url: str) -> str:
    # Render/Heroku sometimes provide postgres:// which SQLAlchemy expects as postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        return int(raw) if raw else default
    except Exception:
        return default


class Config:
    # Base directory of the backend (one level above this package)
    BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    INSTANCE_DIR = os.path.join(BACKEND_DIR, "instance")

    ENV_NAME = (os.getenv("ENGAGEMENT_ENV", "dev") or "dev").strip().lower()
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")

    _default_sqlite_path = os.path.join(INSTANCE_DIR, "engagement.db").replace("\\", "/")
    _db_url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL") or f"sqlite:///{_default_sqlite_path}"
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(_db_url)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CORS: comma-separated origins for web builds
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")

    # Reference timezone used to cut calendar days for streaks and leaderboards.
    ENGAGEMENT_TIMEZONE = os.getenv("ENGAGEMENT_TIMEZONE", "UTC")

    # Static mirror of every leaderboard snapshot. Empty string disables it.
    LEADERBOARD_ARTIFACT_DIR = os.getenv("LEADERBOARD_ARTIFACT_DIR", os.path.join(INSTANCE_DIR, "leaderboards"))

    STREAK_UPDATE_RETRIES = _int_env("STREAK_UPDATE_RETRIES", 3)

    LOG_LEVEL = (os.getenv("LOG_LEVEL", "INFO") or "INFO").strip().upper()
