"""
Shared fixtures.
Services take a `client`, so every test runs against an in-memory database.
"""

import os
import sys
from pathlib import Path

import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from fakes import FakeSupabase, FakeVapi  # noqa: E402


@pytest.fixture
def db():
    return FakeSupabase()


@pytest.fixture
def auth(db):
    return db.auth


@pytest.fixture
def vapi():
    return FakeVapi()


@pytest.fixture
def user_id():
    return "11111111-1111-1111-1111-111111111111"


@pytest.fixture
def other_user_id():
    return "22222222-2222-2222-2222-222222222222"
