import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite file next to the code for development; PostgreSQL in production
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "bookings.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # SQLite only: how long a writer waits for the database lock
    SQLITE_BUSY_TIMEOUT_SECONDS = int(os.getenv("SQLITE_BUSY_TIMEOUT_SECONDS", "30"))
    # PostgreSQL only: upper bound on waiting for slot row locks
    LOCK_TIMEOUT_MS = int(os.getenv("LOCK_TIMEOUT_MS", "5000"))

    # Slot grid
    SLOT_MINUTES = 15
    SLOT_WINDOW_DAYS = int(os.getenv("SLOT_WINDOW_DAYS", "7"))  # rolling window when no date given

    # Daily generation trigger (scheduler clock, server time)
    SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "false").lower() == "true"
    SLOT_GENERATION_HOUR = int(os.getenv("SLOT_GENERATION_HOUR", "2"))
    SLOT_GENERATION_MINUTE = int(os.getenv("SLOT_GENERATION_MINUTE", "0"))

    # Booking rules
    ENFORCE_BREAKS_AT_BOOKING = os.getenv("ENFORCE_BREAKS_AT_BOOKING", "false").lower() == "true"
    CUSTOMER_PHONE_PATTERN = os.getenv("CUSTOMER_PHONE_PATTERN", r"^0\d{9}$")
    DEFAULT_TIME_ZONE = os.getenv("DEFAULT_TIME_ZONE", "UTC")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SCHEDULER_ENABLED = False
    SQLITE_BUSY_TIMEOUT_SECONDS = 30
    LOG_LEVEL = "DEBUG"
