import logging
import sqlite3
from typing import List, Optional

from ..models import Whisper
from ..utils.timeutils import now_ms
from .store import (
    CREATE_INDEX_SQL,
    CREATE_TABLE_SQL,
    DELETE_OLD_SQL,
    INSERT_SQL,
    RANGE_SQL,
    RECENT_SQL,
    StoreError,
    WhisperStore,
)

logger = logging.getLogger(__name__)


class SqliteStore(WhisperStore):
    """Whispers in a local SQLite file."""

    def __init__(self, path: str):
        self.path = path
        try:
            self.conn = sqlite3.connect(path)
            self.conn.execute(CREATE_TABLE_SQL)
            self.conn.execute(CREATE_INDEX_SQL)
            self.conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open SQLite database {path!r}: {exc}") from exc

    def insert(self, text: str, lat: float, lng: float, created_at: Optional[int] = None) -> Whisper:
        created_at = created_at if created_at is not None else now_ms()
        try:
            with self.conn:
                cur = self.conn.execute(INSERT_SQL, (text, lat, lng, created_at))
        except sqlite3.Error as exc:
            raise StoreError(f"Insert failed: {exc}") from exc
        return Whisper(id=cur.lastrowid, text=text, lat=lat, lng=lng, created_at=created_at)

    def range_query(self, lat: float, lng: float, radius_m: float, since_ms: int) -> List[Whisper]:
        return self._select(RANGE_SQL, self._box_args(lat, lng, radius_m, since_ms))

    def delete_older_than(self, cutoff_ms: int) -> int:
        try:
            with self.conn:
                cur = self.conn.execute(DELETE_OLD_SQL, (cutoff_ms,))
        except sqlite3.Error as exc:
            raise StoreError(f"Delete failed: {exc}") from exc
        logger.info("Deleted %s whispers older than %s", cur.rowcount, cutoff_ms)
        return cur.rowcount

    def all_recent(self, since_ms: int, limit: int) -> List[Whisper]:
        return self._select(RECENT_SQL, (since_ms, limit))

    def close(self) -> None:
        self.conn.close()

    def _select(self, sql: str, args: tuple) -> List[Whisper]:
        try:
            rows = self.conn.execute(sql, args).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Query failed: {exc}") from exc
        return [Whisper.from_row(r) for r in rows]
