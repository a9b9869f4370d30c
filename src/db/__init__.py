from .schema import SCHEMA_SQL, INDEXES_SQL
from .client import get_supabase_client, get_admin_client, new_anon_client, first_row
from .postgres import get_postgres_connection, get_database_url, check_table_exists, apply_schema

__all__ = [
    "SCHEMA_SQL",
    "INDEXES_SQL",
    "get_supabase_client",
    "get_admin_client",
    "new_anon_client",
    "first_row",
    "get_postgres_connection",
    "get_database_url",
    "check_table_exists",
    "apply_schema",
]
