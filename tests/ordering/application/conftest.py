import pytest


@pytest.fixture(autouse=True)
def _database(session_factory):
    """Application tests always run against a fresh per-test database."""
    yield session_factory
