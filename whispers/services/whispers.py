from typing import List, Optional

from ..models import Whisper
from ..utils.clustering import (
    Cluster,
    LocalView,
    group_by_radius,
    heat_points,
    split_near_far,
)
from ..utils.geo import haversine, round_coord, validate_coordinates
from ..utils.timeutils import MS_PER_HOUR, days_ago_ms, now_ms
from .store import WhisperStore


class WhisperService:
    """Posting and proximity queries on top of a storage backend."""

    # How many rows the proximity helpers look at.
    WORKING_SET = 1000

    def __init__(
        self,
        store: WhisperStore,
        retention_days: int = 90,
        nearby_radius_m: float = 300.0,
        group_radius_m: float = 304.0,
        cluster_radius_m: float = 30.48,
        max_characters: int = 50,
    ):
        self.store = store
        self.max_characters = max_characters
        self.retention_days = retention_days
        self.nearby_radius_m = nearby_radius_m
        self.group_radius_m = group_radius_m
        self.cluster_radius_m = cluster_radius_m

    def _since(self) -> int:
        return days_ago_ms(self.retention_days)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def post(self, text: str, lat: float, lng: float) -> Whisper:
        text = text.strip()
        if not text:
            raise ValueError("Missing fields")
        if len(text) > self.max_characters:
            raise ValueError(f"Whispers are limited to {self.max_characters} characters")
        lat, lng = validate_coordinates(lat, lng)
        return self.store.insert(text, lat, lng)

    def purge(self, retention_days: Optional[float] = None) -> int:
        """Delete whispers older than the retention window."""
        days = self.retention_days if retention_days is None else retention_days
        if days < 0:
            raise ValueError("retention must not be negative")
        return self.store.delete_older_than(days_ago_ms(days))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def recent(self, limit: int = 500) -> List[Whisper]:
        return self.store.all_recent(self._since(), limit)

    def nearby(
        self,
        lat: float,
        lng: float,
        radius_m: Optional[float] = None,
        precision: Optional[int] = None,
    ) -> List[Whisper]:
        """
        Whispers within ``radius_m`` of (lat, lng), newest first.

        With ``precision`` the query point and every whisper are snapped to
        that many decimal places before measuring, which trades accuracy
        for not revealing exact positions. Snapping can move a point by
        kilometres, so that path scans the recent working set instead of
        the bounding-box query.
        """
        radius_m = self.nearby_radius_m if radius_m is None else radius_m
        if radius_m < 0:
            raise ValueError("radius must not be negative")
        lat, lng = validate_coordinates(lat, lng)

        if precision is None:
            candidates = self.store.range_query(lat, lng, radius_m, self._since())
            return [w for w in candidates if haversine(lat, lng, w.lat, w.lng) <= radius_m]

        q_lat, q_lng = round_coord(lat, precision), round_coord(lng, precision)
        return [
            w
            for w in self.recent(self.WORKING_SET)
            if haversine(
                q_lat, q_lng, round_coord(w.lat, precision), round_coord(w.lng, precision)
            )
            <= radius_m
        ]

    def clusters(self, radius_m: Optional[float] = None) -> List[Cluster]:
        radius_m = self.cluster_radius_m if radius_m is None else radius_m
        return group_by_radius(self.recent(self.WORKING_SET), radius_m)

    def local_view(
        self,
        lat: float,
        lng: float,
        mine_id: Optional[int] = None,
        radius_m: Optional[float] = None,
    ) -> LocalView:
        radius_m = self.group_radius_m if radius_m is None else radius_m
        lat, lng = validate_coordinates(lat, lng)
        return split_near_far(self.recent(self.WORKING_SET), (lat, lng), radius_m, mine_id)

    def heat(self, max_age_hours: Optional[float] = 1, intensity: float = 1.0) -> List[List[float]]:
        max_age_ms = None if max_age_hours is None else int(max_age_hours * MS_PER_HOUR)
        return heat_points(self.recent(self.WORKING_SET), now_ms(), max_age_ms, intensity)
