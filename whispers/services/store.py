"""
Storage contract shared by every backend.

A backend only has to do four things: insert a whisper, fetch the rows
in a bounding box, bulk-delete old rows and read the recent ones.
"""

from typing import List, Optional

from ..models import Whisper
from ..utils.geo import bounding_box

CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS whispers (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        text TEXT NOT NULL,
        lat REAL NOT NULL,
        lng REAL NOT NULL,
        createdAt INTEGER NOT NULL
    )
"""
CREATE_INDEX_SQL = (
    "CREATE INDEX IF NOT EXISTS idx_whispers_created ON whispers(createdAt)"
)

INSERT_SQL = "INSERT INTO whispers (text, lat, lng, createdAt) VALUES (?, ?, ?, ?)"
RANGE_SQL = """
    SELECT id, text, lat, lng, createdAt FROM whispers
    WHERE createdAt > ?
      AND lat BETWEEN ? AND ?
      AND lng BETWEEN ? AND ?
    ORDER BY createdAt DESC
"""
DELETE_OLD_SQL = "DELETE FROM whispers WHERE createdAt < ?"
RECENT_SQL = """
    SELECT id, text, lat, lng, createdAt FROM whispers
    WHERE createdAt > ?
    ORDER BY createdAt DESC
    LIMIT ?
"""


class StoreError(RuntimeError):
    """Raised when a backend cannot read or write whispers."""


class WhisperStore:
    """Base class for the storage backends."""

    def insert(self, text: str, lat: float, lng: float, created_at: Optional[int] = None) -> Whisper:
        raise NotImplementedError

    def range_query(self, lat: float, lng: float, radius_m: float, since_ms: int) -> List[Whisper]:
        """Whispers newer than ``since_ms`` inside the square around (lat, lng)."""
        raise NotImplementedError

    def delete_older_than(self, cutoff_ms: int) -> int:
        raise NotImplementedError

    def all_recent(self, since_ms: int, limit: int) -> List[Whisper]:
        """Whispers newer than ``since_ms``, newest first."""
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @staticmethod
    def _box_args(lat: float, lng: float, radius_m: float, since_ms: int) -> tuple:
        min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius_m)
        return (since_ms, min_lat, max_lat, min_lng, max_lng)


def create_store(url: str, auth_token: Optional[str] = None) -> WhisperStore:
    """
    Pick a backend from a database URL.

    * ``sqlite:///relative.db`` / ``sqlite:////abs/path.db`` – local SQLite
    * ``json:///whispers.json`` – flat JSON file
    * ``libsql://db.turso.io`` / ``https://…`` – managed remote SQLite
    * a bare path – JSON when it ends in ``.json``, SQLite otherwise
    """
    # Imported here so the backends can import this module for the base class.
    from .json_store import JsonFileStore
    from .sqlite_store import SqliteStore
    from .turso_store import TursoStore

    if url.startswith("sqlite://"):
        return SqliteStore(url[len("sqlite:///"):] if url.startswith("sqlite:///") else url[len("sqlite://"):])
    if url.startswith("json://"):
        return JsonFileStore(url[len("json:///"):] if url.startswith("json:///") else url[len("json://"):])
    if url.startswith(("libsql://", "https://", "http://")):
        return TursoStore(url, auth_token=auth_token)
    if "://" in url:
        raise ValueError(f"Unsupported database URL: {url}")
    if url.endswith(".json"):
        return JsonFileStore(url)
    return SqliteStore(url)
