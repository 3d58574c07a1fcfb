import base64
import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

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

# Databases whose schema this process has already created.
_READY = set()


def http_url(url: str) -> str:
    """``libsql://name.turso.io`` → ``https://name.turso.io``."""
    if url.startswith("libsql://"):
        url = "https://" + url[len("libsql://"):]
    return url.rstrip("/")


def encode_value(value: Any) -> Dict[str, Any]:
    """Python value → typed Hrana argument."""
    if value is None:
        return {"type": "null"}
    if isinstance(value, bool):
        return {"type": "integer", "value": str(int(value))}
    if isinstance(value, int):
        # 64-bit integers travel as strings so JSON does not lose precision.
        return {"type": "integer", "value": str(value)}
    if isinstance(value, float):
        return {"type": "float", "value": value}
    if isinstance(value, bytes):
        return {"type": "blob", "base64": base64.b64encode(value).decode("ascii")}
    return {"type": "text", "value": str(value)}


def decode_value(cell: Dict[str, Any]) -> Any:
    """Typed Hrana value → Python value."""
    kind = cell.get("type")
    if kind == "null":
        return None
    if kind == "integer":
        return int(cell["value"])
    if kind == "float":
        return float(cell["value"])
    if kind == "text":
        return cell["value"]
    if kind == "blob":
        return base64.b64decode(cell["base64"])
    raise StoreError(f"Unexpected value type from Turso: {kind!r}")


class TursoStore(WhisperStore):
    """Managed remote SQLite (Turso / libSQL) over its HTTP pipeline API."""

    PIPELINE_PATH = "/v2/pipeline"

    def __init__(
        self,
        url: str,
        auth_token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        self.base_url = http_url(url)
        self.timeout = timeout
        self.session = session or requests.Session()
        if auth_token:
            self.session.headers["Authorization"] = f"Bearer {auth_token}"

    # ------------------------------------------------------------------
    # 1️⃣ Talk to the pipeline endpoint
    # ------------------------------------------------------------------
    def _pipeline(self, statements: Sequence[tuple]) -> List[Dict[str, Any]]:
        body = {
            "requests": [
                {
                    "type": "execute",
                    "stmt": {"sql": sql, "args": [encode_value(a) for a in args]},
                }
                for sql, args in statements
            ]
            + [{"type": "close"}]
        }
        try:
            resp = self.session.post(
                self.base_url + self.PIPELINE_PATH, json=body, timeout=self.timeout
            )
            resp.raise_for_status()
            results = resp.json()["results"]
        except requests.RequestException as exc:
            raise StoreError(f"Turso request failed: {exc}") from exc
        except (ValueError, KeyError, TypeError) as exc:
            raise StoreError(f"Malformed Turso response: {exc}") from exc

        out = []
        for result in results[: len(statements)]:
            if result.get("type") != "ok":
                message = (result.get("error") or {}).get("message", "unknown error")
                raise StoreError(f"Turso statement failed: {message}")
            out.append(result["response"]["result"])
        if len(out) != len(statements):
            raise StoreError("Turso returned fewer results than statements sent")
        return out

    def _execute(self, sql: str, args: tuple = ()) -> Dict[str, Any]:
        self._ensure_schema()
        return self._pipeline([(sql, args)])[0]

    def _ensure_schema(self) -> None:
        if self.base_url in _READY:
            return
        self._pipeline([(CREATE_TABLE_SQL, ()), (CREATE_INDEX_SQL, ())])
        _READY.add(self.base_url)
        logger.info("Schema ready on %s", self.base_url)

    def _select(self, sql: str, args: tuple) -> List[Whisper]:
        result = self._execute(sql, args)
        return [
            Whisper.from_row([decode_value(cell) for cell in row])
            for row in result.get("rows", [])
        ]

    # ------------------------------------------------------------------
    # 2️⃣ Store operations
    # ------------------------------------------------------------------
    def insert(self, text: str, lat: float, lng: float, created_at: Optional[int] = None) -> Whisper:
        created_at = created_at if created_at is not None else now_ms()
        result = self._execute(INSERT_SQL, (text, float(lat), float(lng), created_at))
        rowid = result.get("last_insert_rowid")
        return Whisper(
            id=int(rowid) if rowid is not None else None,
            text=text,
            lat=lat,
            lng=lng,
            created_at=created_at,
        )

    def range_query(self, lat: float, lng: float, radius_m: float, since_ms: int) -> List[Whisper]:
        return self._select(RANGE_SQL, self._box_args(lat, lng, radius_m, since_ms))

    def delete_older_than(self, cutoff_ms: int) -> int:
        result = self._execute(DELETE_OLD_SQL, (cutoff_ms,))
        removed = int(result.get("affected_row_count", 0))
        logger.info("Deleted %s whispers older than %s", removed, cutoff_ms)
        return removed

    def all_recent(self, since_ms: int, limit: int) -> List[Whisper]:
        return self._select(RECENT_SQL, (since_ms, limit))

    def close(self) -> None:
        self.session.close()
