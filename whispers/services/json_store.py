import json
import logging
import os
import tempfile
import threading
from typing import Dict, List, Optional

from ..models import Whisper
from ..utils.geo import bounding_box
from ..utils.timeutils import now_ms
from .store import StoreError, WhisperStore

logger = logging.getLogger(__name__)

# One lock per file, shared by every store instance pointing at it.
_LOCKS: Dict[str, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(path: str) -> threading.Lock:
    key = os.path.abspath(path)
    with _LOCKS_GUARD:
        return _LOCKS.setdefault(key, threading.Lock())


class JsonFileStore(WhisperStore):
    """Whispers kept as a JSON array in a single file."""

    def __init__(self, path: str):
        self.path = path
        self._lock = _lock_for(path)

    # ------------------------------------------------------------------
    # File access
    # ------------------------------------------------------------------
    def _load(self) -> List[Whisper]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            return [Whisper.from_dict(item) for item in raw]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise StoreError(f"Cannot read {self.path!r}: {exc}") from exc

    def _save(self, whispers: List[Whisper]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        except OSError as exc:
            raise StoreError(f"Cannot write {self.path!r}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump([w.to_dict() for w in whispers], f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as exc:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StoreError(f"Cannot write {self.path!r}: {exc}") from exc

    # ------------------------------------------------------------------
    # Store operations
    # ------------------------------------------------------------------
    def insert(self, text: str, lat: float, lng: float, created_at: Optional[int] = None) -> Whisper:
        created_at = created_at if created_at is not None else now_ms()
        with self._lock:
            whispers = self._load()
            next_id = max((w.id or 0 for w in whispers), default=0) + 1
            whisper = Whisper(id=next_id, text=text, lat=lat, lng=lng, created_at=created_at)
            whispers.append(whisper)
            self._save(whispers)
        return whisper

    def range_query(self, lat: float, lng: float, radius_m: float, since_ms: int) -> List[Whisper]:
        min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius_m)
        with self._lock:
            whispers = self._load()
        hits = [
            w for w in whispers
            if w.created_at > since_ms
            and min_lat <= w.lat <= max_lat
            and min_lng <= w.lng <= max_lng
        ]
        return sorted(hits, key=lambda w: w.created_at, reverse=True)

    def delete_older_than(self, cutoff_ms: int) -> int:
        with self._lock:
            whispers = self._load()
            kept = [w for w in whispers if w.created_at >= cutoff_ms]
            removed = len(whispers) - len(kept)
            if removed:
                self._save(kept)
        logger.info("Deleted %s whispers older than %s", removed, cutoff_ms)
        return removed

    def all_recent(self, since_ms: int, limit: int) -> List[Whisper]:
        with self._lock:
            whispers = self._load()
        recent = sorted(
            (w for w in whispers if w.created_at > since_ms),
            key=lambda w: w.created_at,
            reverse=True,
        )
        return recent[:limit]
