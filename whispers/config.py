import os


def _float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


# ----------------------------------------------------------------------
# Storage
# ----------------------------------------------------------------------
# sqlite:///path.db, json:///path.json, libsql://host or https://host
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///whispers.db")
TURSO_AUTH_TOKEN = os.getenv("TURSO_AUTH_TOKEN", "")
RETENTION_DAYS = _int("RETENTION_DAYS", 90)

# ----------------------------------------------------------------------
# Proximity (metres)
# ----------------------------------------------------------------------
NEARBY_RADIUS_M = _float("NEARBY_RADIUS_M", 300.0)
GROUP_RADIUS_M = _float("GROUP_RADIUS_M", 304.0)
CLUSTER_RADIUS_M = _float("CLUSTER_RADIUS_M", 30.48)  # 100 feet
MAX_QUERY_RADIUS_M = _float("MAX_QUERY_RADIUS_M", 5000.0)

# ----------------------------------------------------------------------
# Posting
# ----------------------------------------------------------------------
MAX_CHARACTERS = _int("MAX_CHARACTERS", 50)
RATE_LIMIT_SECONDS = _int("RATE_LIMIT_SECONDS", 60)

# Athens, GA – shown when the browser refuses geolocation
FALLBACK_CENTER = (33.9519, -83.3576)

# ----------------------------------------------------------------------
# Web push (VAPID)
# ----------------------------------------------------------------------
VAPID_PUBLIC_KEY = os.getenv("VAPID_PUBLIC_KEY", "")
VAPID_PRIVATE_KEY = os.getenv("VAPID_PRIVATE_KEY", "")
VAPID_SUBJECT = os.getenv("VAPID_SUBJECT", "mailto:you@example.com")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class Colours:
    """ANSI escape codes for the command-line output."""

    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    DIM = "\033[2m"
