"""
Supabase client configuration.
Two shared clients: one for token verification (anon key), one for admin
operations (service role). Auth flows that create a session get a fresh
anon client so sessions never leak between tenants.
"""

import os
from functools import lru_cache
from typing import Optional

from supabase import create_client, Client


def _anon_credentials() -> tuple[str, str]:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_KEY")

    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")

    return url, key


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get Supabase client with anon key (respects RLS).
    Only used to verify access tokens.
    """
    return create_client(*_anon_credentials())


def new_anon_client() -> Client:
    """
    Fresh anon client for sign-up / sign-in.
    Never cached: the client stores the session it creates.
    """
    return create_client(*_anon_credentials())


@lru_cache()
def get_admin_client() -> Client:
    """
    Get Supabase client with service role key (bypasses RLS).
    Every query made with it must filter on the authenticated user's ID.
    """
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_SERVICE_KEY")

    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")

    return create_client(url, key)


def first_row(result) -> Optional[dict]:
    """First row of a query result, or None."""
    if result is None or not result.data:
        return None
    return result.data[0]
