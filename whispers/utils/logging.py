import logging
from typing import Optional


class StaticAssetFilter(logging.Filter):
    """Drop werkzeug access lines for the service worker and static files."""

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        return "/static/" not in msg and "/sw.js" not in msg


def setup_logging(level: Optional[str] = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO) if level else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("werkzeug").addFilter(StaticAssetFilter())
