"""Configuration module for Flask application."""
import os
from decimal import Decimal
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False

    # Session Configuration (Production-safe defaults)
    # The cart session id lives in the signed session cookie
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 60 * 60 * 24 * 365  # 1 year, cart rows expire server-side

    # Preferred URL scheme (for url_for with _external=True)
    PREFERRED_URL_SCHEME = os.getenv('PREFERRED_URL_SCHEME', 'http')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'store')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'store')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'store')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Store policy
    STORE_NAME = os.getenv('STORE_NAME', 'The Folk')
    STORE_URL = os.getenv('STORE_URL', 'http://localhost:3000').rstrip('/')
    STORE_CURRENCY = os.getenv('STORE_CURRENCY', 'USD').upper()
    FREE_SHIPPING_THRESHOLD = Decimal(os.getenv('FREE_SHIPPING_THRESHOLD', '50.00'))
    FLAT_SHIPPING_FEE = Decimal(os.getenv('FLAT_SHIPPING_FEE', '5.99'))
    TAX_RATE = Decimal(os.getenv('TAX_RATE', '0.08'))
    CART_TTL_HOURS = int(os.getenv('CART_TTL_HOURS', '168'))  # 7 days
    ESTIMATED_DELIVERY_DAYS = int(os.getenv('ESTIMATED_DELIVERY_DAYS', '5'))

    # Mercado Pago (hosted checkout + webhooks)
    MP_ACCESS_TOKEN = os.getenv('MP_ACCESS_TOKEN')
    MP_WEBHOOK_SECRET = os.getenv('MP_WEBHOOK_SECRET')
    MP_NOTIFICATION_URL = os.getenv('MP_NOTIFICATION_URL')
    CHECKOUT_SUCCESS_URL = os.getenv('CHECKOUT_SUCCESS_URL', f"{STORE_URL}/success")
    CHECKOUT_CANCEL_URL = os.getenv('CHECKOUT_CANCEL_URL', f"{STORE_URL}/cart")
    # Preference expiry; an unpaid checkout stops locking the cart after this
    CHECKOUT_EXPIRATION_MINUTES = int(os.getenv('CHECKOUT_EXPIRATION_MINUTES', '60'))

    # Email configuration
    MAIL_SERVER = os.getenv('SMTP_HOST', 'smtp.gmail.com')
    MAIL_PORT = int(os.getenv('SMTP_PORT', 587))
    MAIL_USE_TLS = True
    MAIL_USE_SSL = False
    MAIL_USERNAME = os.getenv('SMTP_USER') or ''
    MAIL_PASSWORD = os.getenv('SMTP_PASSWORD') or ''
    MAIL_DEFAULT_SENDER = (
        os.getenv('SMTP_FROM')
        or MAIL_USERNAME
        or 'no-reply@localhost'
    )
    MAIL_SUPPRESS_SEND = os.getenv('MAIL_SUPPRESS_SEND', 'false').lower() == 'true'

    # Domain events: dispatch OrderCreated consumers on a background thread
    EVENTS_ASYNC = os.getenv('EVENTS_ASYNC', 'true').lower() == 'true'


class TestConfig(Config):
    """Configuration used by the test-suite."""

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    WTF_CSRF_ENABLED = False

    FREE_SHIPPING_THRESHOLD = Decimal('100.00')
    FLAT_SHIPPING_FEE = Decimal('5.00')
    TAX_RATE = Decimal('0.10')
    STORE_CURRENCY = 'USD'

    MP_ACCESS_TOKEN = 'TEST-access-token'
    MP_WEBHOOK_SECRET = 'whsec-test-secret'

    MAIL_SUPPRESS_SEND = True
    MAIL_USERNAME = 'store@test.com'
    EVENTS_ASYNC = False
