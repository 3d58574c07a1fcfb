"""
whispers package – location‑based, ephemeral, anonymous messages.

Public entry points
-------------------
* `app.py` – the Flask web app and JSON API
* `whispers.main` – the command‑line driver (`python -m whispers.main`)
* Services:
    - `WhisperService` – posting and proximity queries
    - `PushService` – web push subscriptions
    - `create_store` and the JSON / SQLite / Turso backends
* Models: `Whisper`, `PushSubscription`
* Utility helpers: `haversine`, `is_within`

    >>> from whispers import create_store, WhisperService, haversine
"""

__all__ = [
    "VERSION",
    # Models
    "Whisper",
    "PushSubscription",
    # Services
    "create_store",
    "StoreError",
    "WhisperService",
    "PushService",
    # Utilities
    "haversine",
    "is_within",
]

VERSION = "0.1.0"


# ----------------------------------------------------------------------
# Re‑export the models
# ----------------------------------------------------------------------
from .models import Whisper, PushSubscription  # noqa: F401, E402


# ----------------------------------------------------------------------
# Re‑export the service classes (they are defined in sub‑packages)
# ----------------------------------------------------------------------
from .services import (  # noqa: F401, E402
    create_store,
    StoreError,
    WhisperService,
    PushService,
)

# ----------------------------------------------------------------------
# Re‑export the geometry helpers from the utils package
# ----------------------------------------------------------------------
from .utils import haversine, is_within  # noqa: F401, E402
