"""Shared fixtures."""

import pytest

from jobboard.logging.context import clear_log_context
from jobboard.persistence import close_database, init_database


@pytest.fixture
def database():
    """Fresh in-memory database for one test."""
    init_database("sqlite:///:memory:")
    yield
    close_database()


@pytest.fixture(autouse=True)
def _reset_log_context():
    clear_log_context()
    yield
    clear_log_context()
