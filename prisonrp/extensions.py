from flask_login import LoginManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from prisonrp.services.db import Storage

# Application-wide extension instances

db = Storage()
login_manager = LoginManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["1000 per day", "200 per hour"],
    storage_uri="memory://",
)

__all__ = [
    "db",
    "login_manager",
    "limiter",
]
