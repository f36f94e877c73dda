#!/usr/bin/env python3
"""
Database initialization script for DATAPONTO
Creates the SQLite entity store (or the PostgreSQL tables when
DATABASE_URL is set) with the schema the deadline and notification
services use
"""

import os
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dataponto.core.database import get_database
from dataponto.core.schema import TABLES, init_schema

DB_PATH = Path(__file__).parent.parent / "data" / "database" / "dataponto.db"


def _using_postgres() -> bool:
    use_sqlite = os.environ.get('USE_SQLITE', '').lower() in ('1', 'true', 'yes')
    return bool(os.environ.get('DATABASE_URL')) and not use_sqlite


def init_database(db_path: Path = DB_PATH, overwrite: bool = False) -> bool:
    """Initialize the database with the entity store schema"""

    if not _using_postgres():
        # Ensure database directory exists
        db_path.parent.mkdir(parents=True, exist_ok=True)

        if db_path.exists():
            if not overwrite:
                response = input(f"Database already exists at {db_path}. Overwrite? (yes/no): ")
                if response.lower() != 'yes':
                    print("Keeping existing database; creating any missing tables.")
                else:
                    db_path.unlink()
            else:
                db_path.unlink()

        db_path.touch(exist_ok=True)
        print(f"Creating database at {db_path}...")

    db = get_database(db_path)

    try:
        init_schema(db)
    except Exception as e:
        print(f"✗ Database error: {e}")
        return False

    existing = set(db.get_table_names())
    for table in TABLES:
        mark = "✓" if table in existing else "✗"
        print(f"  {mark} {table}")

    return all(table in existing for table in TABLES)


if __name__ == "__main__":
    print("=" * 60)
    print("DATAPONTO - Database Initialization")
    print("=" * 60)
    print()

    success = init_database(overwrite="--force" in sys.argv)

    if success:
        print("\n" + "=" * 60)
        print("Database initialization complete!")
        print("=" * 60)
        sys.exit(0)
    else:
        print("\n" + "=" * 60)
        print("Database initialization failed!")
        print("=" * 60)
        sys.exit(1)
