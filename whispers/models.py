"""Data models for whispers and push subscriptions."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

from .utils.geo import validate_coordinates


@dataclass(frozen=True)
class Whisper:
    """
    A message left at a location.

    ``created_at`` is Unix epoch milliseconds, which is also what the
    browser sees as ``createdAt``.
    """

    id: Optional[int]
    text: str
    lat: float
    lng: float
    created_at: int

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "Whisper":
        """Build from an ``(id, text, lat, lng, createdAt)`` row."""
        _id, text, lat, lng, created_at = row
        return cls(
            id=int(_id) if _id is not None else None,
            text=str(text),
            lat=float(lat),
            lng=float(lng),
            created_at=int(created_at),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Whisper":
        return cls.from_row(
            (data.get("id"), data["text"], data["lat"], data["lng"], data["createdAt"])
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "lat": self.lat,
            "lng": self.lng,
            "createdAt": self.created_at,
        }


def parse_whisper_payload(
    payload: Optional[Dict[str, Any]], max_characters: int
) -> Tuple[str, float, float]:
    """
    Validate a POSTed whisper and return ``(text, lat, lng)``.

    Raises ValueError with a message safe to show the client.
    """
    if not isinstance(payload, dict):
        raise ValueError("Missing fields")

    text = payload.get("text")
    lat = payload.get("lat")
    lng = payload.get("lng")
    if not text or lat is None or lng is None:
        raise ValueError("Missing fields")
    if not isinstance(text, str):
        raise ValueError("Text must be a string")

    text = text.strip()
    if not text:
        raise ValueError("Missing fields")
    if len(text) > max_characters:
        raise ValueError(f"Whispers are limited to {max_characters} characters")

    lat, lng = validate_coordinates(lat, lng)
    return text, lat, lng


@dataclass
class PushSubscription:
    """A browser push subscription, optionally pinned to where it was made."""

    endpoint: str
    keys: Dict[str, str] = field(default_factory=dict)
    lat: Optional[float] = None
    lng: Optional[float] = None

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> "PushSubscription":
        """
        Accept the shape of ``PushSubscription.toJSON()`` with optional
        top-level ``lat``/``lng`` keys added by the page.
        """
        if not isinstance(payload, dict):
            raise ValueError("Invalid subscription")

        endpoint = payload.get("endpoint")
        keys = payload.get("keys")
        if not isinstance(endpoint, str) or not endpoint.startswith("https://"):
            raise ValueError("Subscription endpoint must be an https URL")
        if (
            not isinstance(keys, dict)
            or not isinstance(keys.get("p256dh"), str)
            or not isinstance(keys.get("auth"), str)
        ):
            raise ValueError("Subscription keys must include p256dh and auth")

        lat = lng = None
        if payload.get("lat") is not None or payload.get("lng") is not None:
            lat, lng = validate_coordinates(payload.get("lat"), payload.get("lng"))

        return cls(
            endpoint=endpoint,
            keys={"p256dh": keys["p256dh"], "auth": keys["auth"]},
            lat=lat,
            lng=lng,
        )

    @property
    def has_location(self) -> bool:
        return self.lat is not None and self.lng is not None

    def subscription_info(self) -> Dict[str, Any]:
        """The dict ``pywebpush.webpush`` expects."""
        return {"endpoint": self.endpoint, "keys": dict(self.keys)}
