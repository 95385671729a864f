"""Database package - engine lifecycle and ORM models."""
from app.db.connection import init_db, get_session_maker, close_db
from app.db.models import (
    Base,
    User,
    InstagramAccountModel,
    AutomationModel,
    ActivityLogModel,
    ProcessedEventModel,
)

__all__ = [
    "init_db",
    "get_session_maker",
    "close_db",
    "Base",
    "User",
    "InstagramAccountModel",
    "AutomationModel",
    "ActivityLogModel",
    "ProcessedEventModel",
]
