"""Database utilities and session management."""

from wikifaq.db.base import Base, BaseModel, String50, String255, String1000
from wikifaq.db.session import (
    check_db_health,
    close_db,
    create_engine,
    create_session_factory,
    init_db,
)

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    # String types
    "String50",
    "String255",
    "String1000",
    # Session management
    "create_engine",
    "create_session_factory",
    "init_db",
    "close_db",
    "check_db_health",
]
