import os
from dotenv import load_dotenv
from sqlalchemy.engine import URL

load_dotenv()


def _flag(name: str, default: str = '0') -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


class Config:
    # Provide a safe development fallback to avoid 500s when SECRET_KEY is missing.
    SECRET_KEY = os.getenv('SECRET_KEY') or 'dev-secret-key-change-me'
    APP_ENV = os.getenv('APP_ENV') or os.getenv('NODE_ENV', 'development')

    # Storage backend: "sqlite" (single file) or "postgres" (pooled network connection)
    DATABASE_TYPE = os.getenv('DATABASE_TYPE', 'sqlite').lower()
    DATABASE_PATH = os.getenv('DATABASE_PATH', './database/ddg_prisonrp.db')
    DATABASE_URL = os.getenv('DATABASE_URL')
    DB_HOST = os.getenv('DB_HOST', 'localhost')
    DB_PORT = int(os.getenv('DB_PORT', '5432'))
    DB_USER = os.getenv('DB_USER', 'postgres')
    DB_PASSWORD = os.getenv('DB_PASSWORD', '')
    DB_NAME = os.getenv('DB_NAME', 'ddg_prisonrp')
    DB_POOL_SIZE = int(os.getenv('DB_POOL_SIZE', '10'))
    SKIP_SEED = _flag('SKIP_SEED')

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    REMEMBER_COOKIE_HTTPONLY = True

    # Uploaded rule images
    UPLOAD_FOLDER = os.getenv('UPLOAD_FOLDER')
    MAX_IMAGE_SIZE = int(os.getenv('MAX_IMAGE_SIZE', str(10 * 1024 * 1024)))
    MAX_CONTENT_LENGTH = MAX_IMAGE_SIZE + 1024 * 1024

    # Used to build links in Discord embeds
    FRONTEND_URL = os.getenv('FRONTEND_URL', 'http://localhost:3000')
    DISCORD_TIMEOUT = int(os.getenv('DISCORD_TIMEOUT', '10'))

    RATELIMIT_ENABLED = _flag('RATELIMIT_ENABLED', '1')


class TestingConfig(Config):
    TESTING = True
    APP_ENV = 'testing'
    DATABASE_TYPE = 'sqlite'
    DATABASE_PATH = ':memory:'
    DATABASE_URL = None
    SECRET_KEY = 'test-secret-key'
    SKIP_SEED = True
    RATELIMIT_ENABLED = False


def database_url(config) -> str:
    """Build the SQLAlchemy URL for the configured backend."""
    if config.get('DATABASE_TYPE', 'sqlite') == 'postgres':
        if config.get('DATABASE_URL'):
            url = config['DATABASE_URL']
            # Hosted providers hand out postgres:// URLs
            if url.startswith('postgres://'):
                url = 'postgresql+psycopg2://' + url[len('postgres://'):]
            return url
        # Credentials are percent-encoded
        return URL.create(
            'postgresql+psycopg2',
            username=config['DB_USER'],
            password=config['DB_PASSWORD'] or None,
            host=config['DB_HOST'],
            port=int(config['DB_PORT']),
            database=config['DB_NAME'],
        ).render_as_string(hide_password=False)

    path = config.get('DATABASE_PATH') or ':memory:'
    if path == ':memory:':
        return 'sqlite:///:memory:'
    return f"sqlite:///{os.path.abspath(path)}"


__all__ = ['Config', 'TestingConfig', 'database_url']
