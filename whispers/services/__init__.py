"""
services package – storage backends and the services built on them.

Export the high‑level classes so callers can do:

    from whispers.services import create_store, WhisperService, PushService
"""

# Re‑export the concrete classes for a tidy public API
from .store        import WhisperStore, StoreError, create_store   # noqa: F401
from .json_store   import JsonFileStore                             # noqa: F401
from .sqlite_store import SqliteStore                               # noqa: F401
from .turso_store  import TursoStore                                # noqa: F401
from .whispers     import WhisperService                            # noqa: F401
from .push         import PushService, PushNotConfigured            # noqa: F401

# Define what gets imported when a user writes:
#   from whispers.services import *
__all__ = [
    "WhisperStore",
    "StoreError",
    "create_store",
    "JsonFileStore",
    "SqliteStore",
    "TursoStore",
    "WhisperService",
    "PushService",
    "PushNotConfigured",
]
