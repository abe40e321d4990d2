"""Storage layer - PostgreSQL connection management and schema bootstrap."""

from brand_alerts.storage.database import Database, close_database, get_database
from brand_alerts.storage.schema import create_tables
from brand_alerts.storage.users import User, UserDirectory

__all__ = [
    "Database",
    "User",
    "UserDirectory",
    "close_database",
    "create_tables",
    "get_database",
]
