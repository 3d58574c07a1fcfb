"""
Radius-based grouping of whispers into map markers.

Everything here is a linear or quadratic scan over a small, already
time-bounded list of whispers.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from ..models import Whisper
from .geo import haversine


@dataclass
class Cluster:
    """A marker on the map: the mean position of its members."""

    whispers: List[Whisper] = field(default_factory=list)

    @property
    def anchor(self) -> Whisper:
        return self.whispers[0]

    @property
    def count(self) -> int:
        return len(self.whispers)

    @property
    def lat(self) -> float:
        return sum(w.lat for w in self.whispers) / len(self.whispers)

    @property
    def lng(self) -> float:
        return sum(w.lng for w in self.whispers) / len(self.whispers)

    def to_dict(self) -> dict:
        return {
            "lat": self.lat,
            "lng": self.lng,
            "count": self.count,
            "messages": [w.to_dict() for w in self.whispers],
        }


@dataclass
class LocalView:
    """What a viewer standing at ``center`` sees."""

    center: Tuple[float, float]
    near: List[Whisper]
    distant: List[Whisper]

    @property
    def group_position(self) -> Optional[Tuple[float, float]]:
        if not self.near:
            return None
        n = len(self.near)
        return (
            sum(w.lat for w in self.near) / n,
            sum(w.lng for w in self.near) / n,
        )

    def to_dict(self) -> dict:
        position = self.group_position
        return {
            "center": {"lat": self.center[0], "lng": self.center[1]},
            "group": {
                "lat": position[0] if position else None,
                "lng": position[1] if position else None,
                "messages": [w.to_dict() for w in self.near],
            },
            "distant": [w.to_dict() for w in self.distant],
        }


def _check_radius(radius_m: float) -> None:
    if radius_m < 0:
        raise ValueError("radius must not be negative")


def group_by_radius(whispers: Iterable[Whisper], radius_m: float) -> List[Cluster]:
    """
    Bucket whispers into clusters.

    Whispers are visited oldest first. Each one joins the first cluster
    whose anchor (its oldest member) lies within ``radius_m``, otherwise
    it starts a new cluster. Members therefore stay sorted oldest first.
    """
    _check_radius(radius_m)

    clusters: List[Cluster] = []
    for whisper in sorted(whispers, key=lambda w: w.created_at):
        for cluster in clusters:
            anchor = cluster.anchor
            if haversine(anchor.lat, anchor.lng, whisper.lat, whisper.lng) <= radius_m:
                cluster.whispers.append(whisper)
                break
        else:
            clusters.append(Cluster(whispers=[whisper]))
    return clusters


def split_near_far(
    whispers: Sequence[Whisper],
    center: Tuple[float, float],
    radius_m: float,
    mine_id: Optional[int] = None,
) -> LocalView:
    """
    Partition whispers into the group around the viewer and everything else.

    The viewer's own whisper (``mine_id``) is always part of the group,
    even once the viewer has walked out of range of it.
    """
    _check_radius(radius_m)

    user_lat, user_lng = center
    near: List[Whisper] = []
    distant: List[Whisper] = []
    for whisper in whispers:
        is_mine = mine_id is not None and whisper.id == mine_id
        if is_mine or haversine(user_lat, user_lng, whisper.lat, whisper.lng) <= radius_m:
            near.append(whisper)
        else:
            distant.append(whisper)

    return LocalView(center=(user_lat, user_lng), near=near, distant=distant)


def heat_points(
    whispers: Iterable[Whisper],
    now_ms: int,
    max_age_ms: Optional[int] = None,
    intensity: float = 1.0,
) -> List[List[float]]:
    """``[lat, lng, intensity]`` triples for the heatmap layer."""
    return [
        [w.lat, w.lng, intensity]
        for w in whispers
        if max_age_ms is None or now_ms - w.created_at <= max_age_ms
    ]
