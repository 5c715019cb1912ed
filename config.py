import os
from dotenv import load_dotenv


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str) -> list:
    raw = os.getenv(name, default)
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


def _database_uri(default: str) -> str:
    uri = os.getenv("DATABASE_URI") or os.getenv("DATABASE_URL") or default
    # Hosted Postgres providers still hand out the scheme SQLAlchemy dropped
    if uri.startswith("postgres://"):
        uri = "postgresql://" + uri[len("postgres://"):]
    return uri

# Load the main .env first (to get ENV_FILE)
load_dotenv()

# If ENV_FILE exists, load that specific file too
env_file = os.getenv("ENV_FILE")
if env_file:
    load_dotenv(env_file)

class Config:
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv("SECRET_KEY", "fallback-secret")
    SQLALCHEMY_DATABASE_URI = _database_uri("sqlite:///:memory:")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
    AUTO_CREATE_SCHEMA = _env_flag("AUTO_CREATE_SCHEMA", False)

    LOG_FILE = os.getenv("LOG_FILE")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    WTF_CSRF_ENABLED = _env_flag("WTF_CSRF_ENABLED", True)
    RATELIMIT_ENABLED = _env_flag("RATELIMIT_ENABLED", False)
    LOGIN_RATE_LIMIT = os.getenv("LOGIN_RATE_LIMIT", "10 per minute")
    SUPPORT_RATE_LIMIT = os.getenv("SUPPORT_RATE_LIMIT", "30 per hour")

    # Logins that always land on the Administrador campus
    RESERVED_USERNAMES = _env_list("RESERVED_USERNAMES", "admin,full")
    SUPER_USERNAME = os.getenv("SUPER_USERNAME", "full").strip().lower()

class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_uri("postgresql://postgres@localhost/inventario")
    LOG_FILE = os.getenv("LOG_FILE", "logs/inventario.log")

class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_uri("sqlite:///development.db")

class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = _database_uri("sqlite:///testing.db")
    WTF_CSRF_ENABLED = False

def get_config(env=None):
    env = env or os.getenv("ENV", "development").lower()

    if env == "production":
        return ProductionConfig
    elif env == "testing":
        return TestingConfig
    else:
        return DevelopmentConfig
