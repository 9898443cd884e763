# retail_backend/config.py
import os
from urllib.parse import quote_plus

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _flag(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def database_url():
    """
    Pick the database URL.
    RETAIL_DB wins (any SQLAlchemy URL), then the MYSQL_* variables,
    then a local SQLite file next to the package.
    """
    url = os.environ.get('RETAIL_DB')
    if url:
        return url

    host = os.environ.get('MYSQL_HOST')
    database = os.environ.get('MYSQL_DATABASE')
    user = os.environ.get('MYSQL_USER')
    if host and database and user:
        password = quote_plus(os.environ.get('MYSQL_PASSWORD', ''))
        port = int(os.environ.get('MYSQL_PORT', '3306'))
        return f"mysql+pymysql://{quote_plus(user)}:{password}@{host}:{port}/{database}?charset=utf8mb4"

    return f"sqlite:///{os.path.join(BASE_DIR, 'retail.db')}"


class Config:
    SQLALCHEMY_DATABASE_URI = database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # signed session token
    JWT_SECRET = os.environ.get('JWT_SECRET', 'change-me-in-production')
    TOKEN_TTL_SECONDS = int(os.environ.get('TOKEN_TTL_SECONDS', str(60 * 60 * 24 * 7)))
    AUTH_COOKIE_NAME = 'auth_token'
    AUTH_COOKIE_SECURE = _flag('AUTH_COOKIE_SECURE')

    # bootstrap admin, created only when the users table is empty
    ADMIN_USERNAME = os.environ.get('ADMIN_USERNAME', 'admin')
    ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD', 'admin123')
    SEED_ON_STARTUP = True

    APP_URL = os.environ.get('APP_URL', 'http://localhost:5000')

    SMTP_HOST = os.environ.get('SMTP_HOST')
    SMTP_PORT = os.environ.get('SMTP_PORT')
    SMTP_USER = os.environ.get('SMTP_USER')
    SMTP_PASS = os.environ.get('SMTP_PASS')
    SMTP_FROM = os.environ.get('SMTP_FROM')
    RESET_MAIL_TO = os.environ.get('RESET_MAIL_TO')
    RESET_TOKEN_TTL_MINUTES = 30

    GOOGLE_CLIENT_ID = os.environ.get('GOOGLE_CLIENT_ID', '')
    GOOGLE_CLIENT_SECRET = os.environ.get('GOOGLE_CLIENT_SECRET', '')

    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    HOST = os.environ.get('HOST', '0.0.0.0')
    PORT = int(os.environ.get('PORT', '5000'))
