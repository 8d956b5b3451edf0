"""
Barangay Luna CertSys - Configuration
Application configuration management
"""
import os
import logging
from datetime import timedelta
from pathlib import Path
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse

# Monorepo layout: <repo>/certsys/api/config.py -> BASE_DIR=<repo>
# API-only layout: /app/config.py -> BASE_DIR=/app
_THIS_DIR = Path(__file__).parent.resolve()
_MONOREPO_ROOT = _THIS_DIR.parent.parent
if (_MONOREPO_ROOT / 'certsys' / 'api').exists():
    BASE_DIR = _MONOREPO_ROOT.resolve()
else:
    BASE_DIR = _THIS_DIR

# Settings the API cannot run without once deployed
CRITICAL_ENV = ('SECRET_KEY', 'SUPABASE_JWT_SECRET', 'SUPABASE_URL', 'SUPABASE_ANON_KEY')


def _require_env(name: str, default: str = None, allow_default_in_dev: bool = True) -> str:
    """
    Get environment variable, failing loudly in production if not set.

    Args:
        name: Environment variable name
        default: Default value (only used in development)
        allow_default_in_dev: Whether to allow default in development mode

    Returns:
        The environment variable value

    Raises:
        RuntimeError: If variable is not set in production
    """
    value = os.getenv(name)
    is_production = os.getenv('FLASK_ENV', 'development') == 'production'

    if value:
        return value

    if is_production:
        if default is None or name in CRITICAL_ENV:
            raise RuntimeError(
                f"CONFIGURATION ERROR: {name} environment variable is required in production. "
                f"Set it in your deployment environment."
            )
        logging.warning(f"Using default value for {name} in production - consider setting explicitly")
        return default

    if default is not None and allow_default_in_dev:
        logging.debug(f"Using default value for {name} in development")
        return default

    raise RuntimeError(f"{name} environment variable is required")


def get_database_url():
    """
    Get and process the database URL for the Supabase Postgres connection.
    - Ensures SSL is enabled for PostgreSQL connections
    - Handles URL scheme conversion (postgres:// -> postgresql://)
    """
    url = os.getenv('DATABASE_URL')

    if not url:
        fallback = 'sqlite:///tmp/certsys.db'
        logging.warning("DATABASE_URL not set; using fallback %s", fallback)
        return fallback

    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql://', 1)

    if url.startswith('postgresql://'):
        try:
            parsed = urlparse(url)
            query_params = parse_qs(parsed.query)

            if 'sslmode' not in query_params:
                query_params['sslmode'] = ['require']

            new_query = urlencode(query_params, doseq=True)
            url = urlunparse((
                parsed.scheme,
                parsed.netloc,
                parsed.path,
                parsed.params,
                new_query,
                parsed.fragment
            ))
        except ValueError as e:
            # Special characters in the password can break urlparse
            logging.warning(f"Could not parse DATABASE_URL (special chars?): {e}")
            if 'sslmode=' not in url:
                separator = '&' if '?' in url else '?'
                url = f"{url}{separator}sslmode=require"

    return url


def get_engine_options():
    """
    Get SQLAlchemy engine options based on the database type.

    The Supabase transaction pooler (port 6543) runs PgBouncer, so no
    client-side pool is kept for it.
    """
    db_url = get_database_url()

    options = {
        'pool_pre_ping': True,
    }

    if db_url.startswith('postgresql://'):
        is_pooler = ':6543' in db_url or 'pooler.supabase.com' in db_url

        if is_pooler:
            from sqlalchemy.pool import NullPool
            options.update({
                'poolclass': NullPool,
                'connect_args': {
                    'connect_timeout': 30,
                    'keepalives': 1,
                    'keepalives_idle': 30,
                    'keepalives_interval': 10,
                    'keepalives_count': 5,
                    'options': '-c statement_timeout=30000',
                    'application_name': 'certsys-api',
                }
            })
        else:
            options.update({
                'pool_recycle': 180,
                'pool_timeout': 20,
                'pool_size': 2,
                'max_overflow': 2,
                'connect_args': {
                    'connect_timeout': 15,
                    'keepalives': 1,
                    'keepalives_idle': 20,
                    'keepalives_interval': 5,
                    'keepalives_count': 3,
                    'options': '-c statement_timeout=30000',
                }
            })

    if db_url.startswith('sqlite://'):
        from sqlalchemy.pool import NullPool
        options = {'poolclass': NullPool}

    return options


class Config:
    """Base configuration"""

    SECRET_KEY = _require_env('SECRET_KEY', 'dev-secret-key-for-local-development-only')
    DEBUG = os.getenv('DEBUG', 'False') == 'True'
    FLASK_ENV = os.getenv('FLASK_ENV', 'development')

    # Database (Supabase Postgres)
    SQLALCHEMY_DATABASE_URI = get_database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = DEBUG
    SQLALCHEMY_ENGINE_OPTIONS = get_engine_options()

    # Supabase project
    SUPABASE_URL = _require_env('SUPABASE_URL', '')
    SUPABASE_ANON_KEY = _require_env('SUPABASE_ANON_KEY', '')
    # Service-role key is optional: without it admin user creation is unavailable
    SUPABASE_SERVICE_KEY = os.getenv('SUPABASE_SERVICE_KEY', '')
    SUPABASE_CERTIFICATES_BUCKET = os.getenv('SUPABASE_CERTIFICATES_BUCKET', 'certificates')
    SUPABASE_PHOTOS_BUCKET = os.getenv('SUPABASE_PHOTOS_BUCKET', 'profile-photos')
    SUPABASE_CERTIFICATES_PUBLIC = os.getenv('SUPABASE_CERTIFICATES_PUBLIC', 'True') == 'True'
    SUPABASE_REQUEST_TIMEOUT = int(os.getenv('SUPABASE_REQUEST_TIMEOUT', 30))

    # JWT - Supabase access tokens are HS256 tokens signed with the project JWT secret
    JWT_SECRET_KEY = _require_env('SUPABASE_JWT_SECRET', 'jwt-dev-secret-for-local-development-only')
    JWT_ALGORITHM = 'HS256'
    JWT_DECODE_ALGORITHMS = ['HS256']
    JWT_DECODE_AUDIENCE = 'authenticated'
    JWT_ENCODE_AUDIENCE = 'authenticated'
    JWT_IDENTITY_CLAIM = 'sub'
    JWT_TOKEN_LOCATION = ['headers']
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(
        seconds=int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES', 3600))
    )

    # Rate Limiting Configuration
    RATELIMIT_ENABLED = os.getenv('RATELIMIT_ENABLED', 'True') == 'True'
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_DEFAULT = os.getenv('RATELIMIT_DEFAULT', '200 per day, 50 per hour')
    RATELIMIT_HEADERS_ENABLED = True

    # Uploads
    MAX_CONTENT_LENGTH = int(os.getenv('MAX_FILE_SIZE', 10 * 1024 * 1024))  # 10MB
    PROFILE_PHOTO_MAX_MB = int(os.getenv('PROFILE_PHOTO_MAX_MB', 5))

    # Transactional email (bearer-key HTTP API accepting {from, to, subject, html})
    EMAIL_API_URL = os.getenv('EMAIL_API_URL', 'https://api.resend.com/emails')
    EMAIL_API_KEY = os.getenv('EMAIL_API_KEY', '')
    EMAIL_TIMEOUT_SECONDS = int(os.getenv('EMAIL_TIMEOUT_SECONDS', 30))
    FROM_EMAIL = os.getenv('FROM_EMAIL', '')
    FROM_NAME = os.getenv('FROM_NAME', 'Luna CERTSYS')

    # Maps / directions
    GOOGLE_MAPS_API_KEY = os.getenv('GOOGLE_MAPS_API_KEY', '')
    DIRECTIONS_TIMEOUT_SECONDS = int(os.getenv('DIRECTIONS_TIMEOUT_SECONDS', 15))

    # Realtime change feed (Supabase database webhooks)
    REALTIME_WEBHOOK_SECRET = os.getenv('REALTIME_WEBHOOK_SECRET', '')

    # Store caching guards
    STORE_CACHE_SECONDS = float(os.getenv('STORE_CACHE_SECONDS', 5))
    STORE_LOADING_TIMEOUT_SECONDS = float(os.getenv('STORE_LOADING_TIMEOUT_SECONDS', 30))

    # Application
    APP_NAME = os.getenv('APP_NAME', 'Luna CERTSYS')
    BARANGAY_CAPTAIN = os.getenv('BARANGAY_CAPTAIN', 'HON. PUNONG BARANGAY')
    BARANGAY_CONTACT_EMAIL = os.getenv('BARANGAY_CONTACT_EMAIL', 'brgy_luna@surigao.gov.ph')
    BARANGAY_CONTACT_PHONE = os.getenv('BARANGAY_CONTACT_PHONE', '09123456789')

    # Frontend URLs (CORS and email links)
    WEB_URL = os.getenv('WEB_URL', 'http://localhost:5173')
    ADMIN_URL = os.getenv('ADMIN_URL', 'http://localhost:3001')

    @staticmethod
    def init_app(app):
        """Initialize application configuration"""
        if not app.config.get('SUPABASE_SERVICE_KEY'):
            app.logger.warning(
                "SUPABASE_SERVICE_KEY not set; admin user creation and registration approval are unavailable"
            )
        if not app.config.get('EMAIL_API_KEY'):
            app.logger.warning("EMAIL_API_KEY not set; outgoing email is disabled")


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = True


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SQLALCHEMY_ECHO = False


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET_KEY = 'test-secret'
    RATELIMIT_ENABLED = False
    SUPABASE_URL = 'https://project.supabase.co'
    SUPABASE_ANON_KEY = 'anon-key'
    SUPABASE_SERVICE_KEY = 'service-key'


config_by_name = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
