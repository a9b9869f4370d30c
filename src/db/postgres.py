"""
Direct Postgres connection, used to apply the schema and to check it.

Connection string priority:
1. DATABASE_URL
2. SUPABASE_DB_URL (Supabase direct connection string)

Usage:
    from src.db.postgres import get_postgres_connection, apply_schema

    with get_postgres_connection() as conn:
        apply_schema(conn)
"""

import os

import psycopg2
from psycopg2.extensions import connection

from .schema import SCHEMA_SQL, INDEXES_SQL, TABLES


def get_database_url() -> str:
    """
    Get database connection URL from environment.

    Raises:
        ValueError: If no connection string is configured
    """
    if database_url := os.environ.get("DATABASE_URL"):
        return database_url

    if supabase_db_url := os.environ.get("SUPABASE_DB_URL"):
        return supabase_db_url

    raise ValueError(
        "No database connection configured. Set one of:\n"
        "  - DATABASE_URL: Direct PostgreSQL connection string\n"
        "  - SUPABASE_DB_URL: Supabase direct connection string (Project Settings > Database)"
    )


def get_postgres_connection() -> connection:
    """
    Get a direct PostgreSQL connection.

    Raises:
        psycopg2.Error: If connection fails
        ValueError: If no connection string is configured
    """
    database_url = get_database_url()

    try:
        return psycopg2.connect(database_url)
    except psycopg2.Error as e:
        raise psycopg2.Error(
            f"Failed to connect to database. Error: {e}\n"
            f"Check that DATABASE_URL is correct and the database is accessible."
        ) from e


def check_table_exists(conn: connection, table_name: str) -> bool:
    """True if public.<table_name> exists."""
    with conn.cursor() as cur:
        cur.execute("""
            SELECT EXISTS (
                SELECT FROM information_schema.tables
                WHERE table_schema = 'public'
                AND table_name = %s
            )
        """, (table_name,))
        return cur.fetchone()[0]


def missing_tables(conn: connection) -> list[str]:
    return [table for table in TABLES if not check_table_exists(conn, table)]


def apply_schema(conn: connection) -> list[str]:
    """
    Run the schema and index SQL in one transaction.
    Returns the tables that were missing beforehand.
    """
    missing = missing_tables(conn)
    with conn.cursor() as cur:
        cur.execute(SCHEMA_SQL)
        cur.execute(INDEXES_SQL)
    conn.commit()
    return missing
