"""Database layer."""

from rentflow.db.base import Base, close_db, get_session, init_db
from rentflow.db.tables import LeaseTable, ObligationTable, PropertyTable, UserTable

__all__ = [
    "Base",
    "LeaseTable",
    "ObligationTable",
    "PropertyTable",
    "UserTable",
    "close_db",
    "get_session",
    "init_db",
]
