"""
Configuration module.

Exports:
    settings: Application settings instance
    get_settings: Function to get settings (for dependency injection)
    get_supabase_client: Supabase client for master data
    get_session_factory: SQLAlchemy session factory for production tables
    transaction: Unit-of-work context manager
    check_connection: Health check function
"""

from config.settings import settings, get_settings, Settings
from config.database import (
    get_supabase_client,
    get_engine,
    get_session_factory,
    transaction,
    advisory_lock,
    check_connection,
    DatabaseSession,
    DatabaseConnectionError
)

__all__ = [
    # Settings
    "settings",
    "get_settings",
    "Settings",

    # Database
    "get_supabase_client",
    "get_engine",
    "get_session_factory",
    "transaction",
    "advisory_lock",
    "check_connection",
    "DatabaseSession",
    "DatabaseConnectionError",
]
