import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite file next to the app by default; point DATABASE_URL at PostgreSQL in production
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "clinic.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
    }

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "clinic_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 30 minutes
    IDLE_TIMEOUT_SECONDS = 30 * 60

    # Session/cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    # Fixed-window IP rate limits
    LOGIN_RATE_WINDOW_SECONDS = 60
    LOGIN_RATE_MAX_REQUESTS = 15
    BOOKING_RATE_WINDOW_SECONDS = 15 * 60
    BOOKING_RATE_MAX_REQUESTS = int(os.getenv("BOOKING_RATE_MAX_REQUESTS", "10"))

    # Patients cannot cancel closer than this to the start; staff are exempt
    CANCEL_CUTOFF_HOURS = int(os.getenv("CANCEL_CUTOFF_HOURS", "2"))

    # Weekly availability window
    WEEKLY_AVAILABILITY_DAYS = 7

    # bcrypt work factor
    BCRYPT_ROUNDS = 12

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    BCRYPT_ROUNDS = 4
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    BOOKING_RATE_MAX_REQUESTS = 1000
    LOGIN_RATE_MAX_REQUESTS = 1000
    LOG_LEVEL = "WARNING"
