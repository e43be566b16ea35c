"""
Create the production tables (cutting, bundles, loading transactions).

Run once against a fresh database; existing tables are left untouched.
Master data tables (employees, orders, size categories, lines) live in
Supabase and are not created here.

Usage:
    python scripts/init_db.py
"""

import sys
from pathlib import Path

# Add backend to path so we can import modules
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from sqlalchemy import inspect
import structlog

from config import get_engine
from tables import Base

logger = structlog.get_logger(__name__)


def init_db():
    """Create any missing production tables."""
    engine = get_engine()
    existing = set(inspect(engine).get_table_names())

    Base.metadata.create_all(engine)

    created = [name for name in Base.metadata.tables if name not in existing]
    logger.info("production_tables_initialized", created=created)

    if created:
        print(f"✓ Created tables: {', '.join(created)}")
    else:
        print("✓ All production tables already exist")


if __name__ == "__main__":
    print("Creating production tables...")
    init_db()
    print("\nDone!")
