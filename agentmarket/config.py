import os
from decimal import Decimal
from dotenv import load_dotenv
from urllib.parse import quote_plus

load_dotenv()


class Config:
    """Base configuration class"""
    # Production: SECRET_KEY must be set via environment variable
    # Development: Falls back to dev key (only for local development)
    _secret_key = os.environ.get('SECRET_KEY')
    if not _secret_key:
        if os.environ.get('FLASK_ENV', 'development') == 'production':
            raise ValueError("SECRET_KEY environment variable must be set in production!")
        _secret_key = 'dev-secret-key-change-in-production'
    SECRET_KEY = _secret_key

    # Production Database Configuration
    DB_HOST = os.environ.get('DB_HOST', 'localhost')
    DB_PORT = os.environ.get('DB_PORT', '3306')
    DB_USER = os.environ.get('DB_USER', 'agentmarket')
    DB_PASSWORD = os.environ.get('DB_PASSWORD', '')
    DB_NAME = os.environ.get('DB_NAME', 'agentmarket')

    # URL-encode password to handle special characters like @, #, etc.
    encoded_password = quote_plus(DB_PASSWORD)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'DATABASE_URL',
        f"mysql+pymysql://{DB_USER}:{encoded_password}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 3600,
        'pool_size': 10,
        'max_overflow': 20,
    }
    RUN_MIGRATIONS_ON_STARTUP = os.environ.get('RUN_MIGRATIONS_ON_STARTUP', 'True') == 'True'

    # Session Configuration
    SESSION_TYPE = 'sqlalchemy'
    SESSION_PERMANENT = False
    SESSION_USE_SIGNER = True
    PERMANENT_SESSION_LIFETIME = 3600  # 1 hour

    # Application Settings
    FLASK_ENV = os.environ.get('FLASK_ENV', 'development')
    # In production, DEBUG must be False
    DEBUG = os.environ.get('FLASK_DEBUG', 'False') == 'True' if FLASK_ENV == 'production' else os.environ.get('FLASK_DEBUG', 'True') == 'True'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Wallet (amounts in minor units: 100 kobo = 1 NGN)
    CURRENCY = os.environ.get('CURRENCY', 'NGN')
    MIN_DEPOSIT = 100_00
    MAX_DEPOSIT = 1_000_000_00
    MIN_WITHDRAWAL = 100_00

    # Orders
    SERVICE_FEE_RATE = Decimal(os.environ.get('SERVICE_FEE_RATE', '0.05'))  # charged to the buyer on top of the price
    COMMISSION_RATE = Decimal(os.environ.get('COMMISSION_RATE', '0.10'))  # withheld from the seller's payout

    # Points economy
    POINTS_DAILY_LOGIN = 100
    POINTS_REFERRAL_SIGNUP = 1000
    POINTS_REFERRAL_AGENT_LISTED = 3000
    POINTS_REFERRAL_PURCHASE = 5000
    POINTS_REFERRED_WELCOME = 500
    POINTS_AGENT_LISTED = 500
    POINTS_ORDER_COMPLETED = 200
    POINTS_EXCHANGE_MIN = 1000
    POINTS_EXCHANGE_RATE = Decimal(os.environ.get('POINTS_EXCHANGE_RATE', '10'))  # points per currency unit
    DAILY_LOGIN_TIMEZONE = os.environ.get('DAILY_LOGIN_TIMEZONE', 'UTC')

    # Reconciliation: pending gateway transactions older than this are failed by `flask ledger reconcile`
    PENDING_TRANSACTION_TTL_MINUTES = int(os.environ.get('PENDING_TRANSACTION_TTL_MINUTES', 24 * 60))

    # Payment Gateways (database PaymentGateway rows take precedence)
    DEFAULT_PAYMENT_PROVIDER = os.environ.get('DEFAULT_PAYMENT_PROVIDER', 'paystack')
    PAYSTACK_SECRET_KEY = os.environ.get('PAYSTACK_SECRET_KEY')
    PAYSTACK_BASE_URL = os.environ.get('PAYSTACK_BASE_URL', 'https://api.paystack.co')
    PAYMENT_CALLBACK_URL = os.environ.get('PAYMENT_CALLBACK_URL', 'http://localhost:5000/payment/callback')

    STRIPE_PUBLIC_KEY = os.environ.get('STRIPE_PUBLIC_KEY')
    STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY')
    STRIPE_WEBHOOK_SECRET = os.environ.get('STRIPE_WEBHOOK_SECRET')

    VERSION = '1.0.0'


class TestingConfig(Config):
    """SQLite-backed configuration for the test suite"""
    TESTING = True
    DEBUG = False
    SECRET_KEY = 'test-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RUN_MIGRATIONS_ON_STARTUP = False
    PAYSTACK_SECRET_KEY = 'sk_test_paystack'
    STRIPE_SECRET_KEY = 'sk_test_stripe'
    STRIPE_WEBHOOK_SECRET = 'whsec_test'
