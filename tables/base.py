"""
Declarative base for the production tables.

Master data (employees, orders, size categories, lines) is not mapped
here; it is read through the Supabase client.
"""

from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
