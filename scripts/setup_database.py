#!/usr/bin/env python3
"""
Set up the database schema.
Run this once to create all tables, RLS policies and indexes.

Usage:
    python scripts/setup_database.py           # print the SQL
    python scripts/setup_database.py --apply   # run it over DATABASE_URL / SUPABASE_DB_URL
    python scripts/setup_database.py --check   # list missing tables

Note: The SQL is idempotent. For production, you may want to run it
directly in the Supabase SQL editor for more control.
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv


def print_schema():
    """Print the schema SQL for manual execution."""
    from src.db.schema import SCHEMA_SQL, INDEXES_SQL

    print("=" * 60)
    print("DATABASE SCHEMA")
    print("=" * 60)
    print("\nCopy and paste this SQL into Supabase SQL Editor:\n")
    print("-" * 60)
    print(SCHEMA_SQL)
    print("-" * 60)
    print("\nINDEXES:")
    print("-" * 60)
    print(INDEXES_SQL)
    print("-" * 60)


def apply():
    from src.db.postgres import get_postgres_connection, apply_schema

    conn = get_postgres_connection()
    try:
        created = apply_schema(conn)
    finally:
        conn.close()

    if created:
        print(f"✓ Created tables: {', '.join(created)}")
    else:
        print("✓ Schema up to date")


def check() -> int:
    from src.db.postgres import get_postgres_connection, missing_tables

    conn = get_postgres_connection()
    try:
        missing = missing_tables(conn)
    finally:
        conn.close()

    if not missing:
        print("✓ All tables present")
        return 0

    print(f"✗ Missing tables: {', '.join(missing)}")
    return 1


def main():
    parser = argparse.ArgumentParser(description="Database setup")
    parser.add_argument("--apply", action="store_true", help="Run the SQL against the database")
    parser.add_argument("--check", action="store_true", help="List missing tables")
    args = parser.parse_args()

    load_dotenv()

    print("Spoqen API - Database Setup")
    print("=" * 40)
    print()

    if args.check:
        return check()

    if args.apply:
        apply()
        return 0

    print("This script outputs the SQL schema for your database.")
    print("Pass --apply to run it directly.")
    print()

    print_schema()

    print()
    print("Next steps:")
    print("1. Go to your Supabase project dashboard")
    print("2. Open the SQL Editor")
    print("3. Paste the schema SQL above and run it")
    print("4. Then run: python scripts/admin.py check-config")
    return 0


if __name__ == "__main__":
    sys.exit(main())
