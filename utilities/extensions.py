"""Flask extension instances shared by the app factory and the blueprints."""

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_wtf.csrf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

migrate = Migrate()

login_manager = LoginManager()

csrf = CSRFProtect()

# Enabled per app through the RATELIMIT_ENABLED config key
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    strategy="fixed-window",
)
