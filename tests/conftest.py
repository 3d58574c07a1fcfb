import pytest

from whispers.services.json_store import JsonFileStore
from whispers.services.sqlite_store import SqliteStore


@pytest.fixture(params=["sqlite", "json"])
def store(request, tmp_path):
    """Each file-backed store, empty, in a temporary directory."""
    if request.param == "sqlite":
        s = SqliteStore(str(tmp_path / "whispers.db"))
    else:
        s = JsonFileStore(str(tmp_path / "whispers.json"))
    yield s
    s.close()


@pytest.fixture
def sqlite_store(tmp_path):
    s = SqliteStore(str(tmp_path / "whispers.db"))
    yield s
    s.close()
