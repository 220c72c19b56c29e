"""
Deferred extension instances.

Created here, bound to the app in create_app() via init_app().
"""

import sqlite3

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No global limit; we apply per-route
    storage_uri="memory://",
)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ships with FK enforcement off; turn it on per connection."""
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@login_manager.user_loader
def load_user(user_id):
    """Load user by ID. Imports lazily to avoid circular deps."""
    from activity_app.models.user import User

    return db.session.get(User, user_id)


@login_manager.request_loader
def load_user_from_request(request):
    """Resolve the development bearer token ("demo-token-<user_id>-<ts>").

    Discarded users are treated as unauthenticated.
    """
    from activity_app.models.user import User

    header = request.headers.get("Authorization", "")
    token = header.split(" ")[-1] if header else ""
    if not token.startswith("demo-token-"):
        return None

    user_id, _, _ = token[len("demo-token-"):].rpartition("-")
    if not user_id:
        return None

    user = db.session.get(User, user_id)
    if user is None or user.is_discarded:
        return None
    return user
