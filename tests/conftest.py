"""Pytest configuration and fixtures."""

import os

# Settings are read on first use; they must exist before app modules import
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ.setdefault("RETRIEVAL_ENV", "test")
os.environ.setdefault("API_KEY_HASH_ITERATIONS", "1000")

import pytest  # noqa: E402

from tests.fakes.fake_store import FakeStore  # noqa: E402
from tests.fixtures_tenancy import seed_tenancy  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["RETRIEVAL_ENV"] = "test"
    os.environ["API_KEY_HASH_ITERATIONS"] = "1000"


@pytest.fixture
def store():
    """Empty in-memory store wired in place of every app.db function."""
    fake = FakeStore()
    patches = fake.patches()

    for p in patches:
        p.start()

    yield fake

    for p in patches:
        p.stop()


@pytest.fixture
def tenancy(store):
    """Store seeded with the coach/client/organization world and its documents."""
    return seed_tenancy(store)
