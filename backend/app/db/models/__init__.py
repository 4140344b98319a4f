"""ORM models exposed for metadata discovery."""
from app.db.models.user import User
from app.db.models.user_data import UserData

__all__ = [
    "User",
    "UserData",
]
