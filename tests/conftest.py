"""Shared test fixtures."""

import pytest

from elite_notepad.database.repository import Repository
from elite_notepad.database.store import LocalStore

OWNER = "user-1"


@pytest.fixture
def db_path(tmp_path):
    """Provide a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
def store(db_path):
    """Provide an opened local store."""
    return LocalStore(db_path).open()


@pytest.fixture
def repo(store):
    """Provide a repository for the default test owner."""
    return Repository(store, OWNER)
