import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Base configuration class with common settings."""
    # Xano configuration
    XANO_BASE_URL = os.environ.get("XANO_BASE_URL", "https://xnpm-iauo-ef2d.n7e.xano.io")
    XANO_AUTH_API_GROUP = os.environ.get("XANO_AUTH_API_GROUP", "api:spcRzPtb")
    XANO_API_GROUP = os.environ.get("XANO_API_GROUP", "api:DMF6LqEb")
    XANO_JOBS_API_GROUP = os.environ.get("XANO_JOBS_API_GROUP", "api:1RpGaTf6")
    XANO_TIMEOUT = int(os.environ.get("XANO_TIMEOUT", "60"))  # seconds

    # Flask session (holds the Xano auth token)
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    SESSION_LIFETIME_HOURS = int(os.environ.get("SESSION_LIFETIME_HOURS", "12"))
    SESSION_COOKIE_SAMESITE = "Lax"

    # CORS configuration
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE = os.environ.get("LOG_FILE")

    # Both facilities are in Illinois
    PLANNER_TIMEZONE = os.environ.get("PLANNER_TIMEZONE", "America/Chicago")

    # Production upload limit (5MB)
    MAX_UPLOAD_BYTES = 5 * 1024 * 1024


class LocalConfig(Config):
    """Configuration for local development."""
    ENV = "local"
    DEBUG = True


class SandboxConfig(Config):
    """Configuration for sandbox/staging environment."""
    ENV = "sandbox"
    DEBUG = False


class ProductionConfig(Config):
    """Configuration for production environment."""
    ENV = "production"
    DEBUG = False
    SESSION_COOKIE_SECURE = True


class TestingConfig(Config):
    """Configuration for the test suite."""
    ENV = "testing"
    TESTING = True
    DEBUG = False
    SECRET_KEY = "test-secret-key"
    XANO_BASE_URL = "https://xano.test"


def get_config():
    """Get the appropriate configuration class based on environment variable.
    
    Environment is determined by FLASK_ENV or ENVIRONMENT variable:
    - 'local' or 'development' -> LocalConfig
    - 'sandbox' or 'staging' -> SandboxConfig
    - 'production' or 'prod' -> ProductionConfig
    
    Defaults to LocalConfig if not set.
    """
    env = (os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")).lower()
    
    if env in ["local", "development", "dev"]:
        return LocalConfig
    elif env in ["sandbox", "staging", "stage"]:
        return SandboxConfig
    elif env in ["production", "prod"]:
        return ProductionConfig
    elif env in ["testing", "test"]:
        return TestingConfig
    else:
        # Default to local for safety
        return LocalConfig
