"""
Core module - configuration, database, caller identity and shared infrastructure.
"""

from app.core.auth import Caller, UserRole, get_current_caller, require_role
from app.core.config import get_settings, settings
from app.core.database import Base, UTCDateTime, close_db, get_db, init_db

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "UTCDateTime",
    "get_db",
    "init_db",
    "close_db",
    # Identity
    "Caller",
    "UserRole",
    "get_current_caller",
    "require_role",
]
