import os


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: some PaaS providers (Railway, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    # --- Activity ingestion ---
    # Above this many activities created in the trailing hour, a company's
    # events go through the deferred queue instead of a synchronous write.
    ACTIVITY_ASYNC_THRESHOLD = int(os.environ.get("ACTIVITY_ASYNC_THRESHOLD", 1000))
    ACTIVITY_QUEUE_WORKERS = int(os.environ.get("ACTIVITY_QUEUE_WORKERS", 2))
    ACTIVITY_JOB_MAX_ATTEMPTS = int(os.environ.get("ACTIVITY_JOB_MAX_ATTEMPTS", 3))
    ACTIVITY_JOB_BACKOFF_SECONDS = float(
        os.environ.get("ACTIVITY_JOB_BACKOFF_SECONDS", 5)
    )
    ACTIVITY_RECENT_LIMIT = int(os.environ.get("ACTIVITY_RECENT_LIMIT", 10))

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = Config.SQLALCHEMY_DATABASE_URI or "sqlite:///activity_dev.db"


class TestConfig(Config):
    """Testing with in-memory SQLite, no worker threads, no retry delay."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    ACTIVITY_ASYNC_THRESHOLD = 1000
    ACTIVITY_QUEUE_WORKERS = 0  # tests drain the queue explicitly
    ACTIVITY_JOB_MAX_ATTEMPTS = 3
    ACTIVITY_JOB_BACKOFF_SECONDS = 0
    SERVER_NAME = "localhost"

    @staticmethod
    def validate():
        """Skip validation in test mode, everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
