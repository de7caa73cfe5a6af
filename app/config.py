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

    # --- Paystack ---
    PAYSTACK_SECRET_KEY = os.environ.get("PAYSTACK_SECRET_KEY")
    # Paystack signs webhooks with the secret key; a separate value is
    # only needed when a proxy re-signs the payload.
    PAYSTACK_WEBHOOK_SECRET = (
        os.environ.get("PAYSTACK_WEBHOOK_SECRET") or PAYSTACK_SECRET_KEY
    )
    PAYSTACK_BASE_URL = os.environ.get("PAYSTACK_BASE_URL", "https://api.paystack.co")
    PAYSTACK_TIMEOUT = float(os.environ.get("PAYSTACK_TIMEOUT", 15))
    PAYSTACK_CURRENCY = os.environ.get("PAYSTACK_CURRENCY", "NGN")
    PAYSTACK_VERIFY_WEBHOOKS = True

    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Session / cookies ---
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = "Lax"

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
            "PAYSTACK_SECRET_KEY",
            "FRONTEND_URL",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development.

    Webhook signatures are not enforced so payloads can be replayed
    with curl against a local server.
    """

    DEBUG = True
    PAYSTACK_VERIFY_WEBHOOKS = os.environ.get(
        "PAYSTACK_VERIFY_WEBHOOKS", ""
    ).lower() in ("1", "true", "yes")
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False


class TestConfig(Config):
    """Testing — in-memory SQLite, fake Paystack keys, signatures enforced."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    PAYSTACK_SECRET_KEY = "sk_test_fake"
    PAYSTACK_WEBHOOK_SECRET = "sk_test_fake"
    PAYSTACK_BASE_URL = "https://api.paystack.test"
    PAYSTACK_VERIFY_WEBHOOKS = True
    FRONTEND_URL = "http://localhost:3000"
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False

    @staticmethod
    def validate():
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False
    PAYSTACK_VERIFY_WEBHOOKS = True
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
