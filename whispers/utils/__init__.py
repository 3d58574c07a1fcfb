"""
utils package – small, pure‑function helpers.

We expose the geometry helpers that are used throughout the app. The
grouping helpers live in ``utils.clustering`` (they depend on the models).
"""

# Re‑export the helpers for a clean import path
from .geo import haversine, is_within, bounding_box, round_coord, validate_coordinates   # noqa: F401
from .timeutils import now_ms   # noqa: F401

__all__ = [
    "haversine",
    "is_within",
    "bounding_box",
    "round_coord",
    "validate_coordinates",
    "now_ms",
]
