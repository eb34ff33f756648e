"""Pytest fixtures for PostgreSQL integration tests.

Connection settings come from the usual POSTGRES_* environment variables,
with the host defaulting to localhost. Tests are skipped when no server is
reachable.
"""

import os
import uuid
from typing import AsyncGenerator, Callable

import pytest

from voting_api.config import Settings
from voting_api.database import PostgresStore
from voting_api.errors import StorageUnavailable
from voting_api.seed import DEFAULT_CANDIDATES, DEFAULT_GROUPS


@pytest.fixture
def postgres_settings() -> Settings:
    """Settings pointing at the test database."""
    return Settings(
        POSTGRES_HOST=os.getenv("POSTGRES_HOST", "localhost"),
        POSTGRES_POOL_MIN_SIZE=1,
        POSTGRES_POOL_MAX_SIZE=12,
        POSTGRES_COMMAND_TIMEOUT=10.0
    )


@pytest.fixture
async def postgres_store(postgres_settings: Settings) -> AsyncGenerator[PostgresStore, None]:
    """PostgreSQL store reset to the default ballot with no votes.

    Yields an initialized store and closes its pool afterwards.
    """
    store = PostgresStore(postgres_settings)
    try:
        await store.initialize()
    except StorageUnavailable:
        pytest.skip("PostgreSQL not available")

    await store.reset_election(DEFAULT_GROUPS, DEFAULT_CANDIDATES, force=True)

    yield store

    await store.close()


@pytest.fixture
def unique_email() -> Callable[[], str]:
    """Helper fixture generating voter emails that never collide across runs."""
    def _generate() -> str:
        return f"test-{uuid.uuid4().hex[:12]}@nsut.ac.in"

    return _generate


# Marker for tests that require a database server
def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers",
        "docker: mark test as requiring a running PostgreSQL server"
    )
