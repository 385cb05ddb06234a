"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'restaurant')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'restaurant')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'restaurant')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Tax defaults used when a restaurant has no profile row yet
    DEFAULT_TAX_RATE = os.getenv('DEFAULT_TAX_RATE', '5')

    # Owner notifications ("order created/changed"), fire-and-forget
    NOTIFY_OWNER_URL = os.getenv('NOTIFY_OWNER_URL')
    NOTIFY_TIMEOUT_SECONDS = float(os.getenv('NOTIFY_TIMEOUT_SECONDS', '3'))

    # Global kill switch for low-stock alerts (per-restaurant flag still applies)
    LOW_STOCK_ALERTS_ENABLED = os.getenv('LOW_STOCK_ALERTS_ENABLED', 'true').lower() == 'true'

    # Error tracking (production only)
    SENTRY_DSN = os.getenv('SENTRY_DSN')
