"""
Database Package Initialization.

SQLAlchemy persistence for the validation engine: the alert table
with its review state and the per-source reliability table.
"""

from .engine import (
    Base,
    create_all_tables,
    create_database_engine,
    create_session_factory,
    get_database_url,
    get_session_factory,
    transaction_scope,
    verify_database_connection,
)

__all__ = [
    "Base",
    "create_all_tables",
    "create_database_engine",
    "create_session_factory",
    "get_database_url",
    "get_session_factory",
    "transaction_scope",
    "verify_database_connection",
]
