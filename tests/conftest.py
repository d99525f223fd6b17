from datetime import datetime, timezone

import pytest

from verse_memory.db import init_db


@pytest.fixture
def tmp_db(tmp_path):
    """Provide an initialized temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_memory.db")
    init_db(db_path)
    return db_path


@pytest.fixture
def jan1():
    return datetime(2024, 1, 1, 9, 30, tzinfo=timezone.utc)
