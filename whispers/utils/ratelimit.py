import threading
import time
from typing import Callable, Dict


class RateLimiter:
    """
    One action per ``window_seconds`` per client key.

    State lives in process memory, so each worker enforces its own window.
    """

    def __init__(self, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.window_seconds = window_seconds
        self._clock = clock
        self._last_seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    def retry_after(self, key: str) -> float:
        """Seconds until ``key`` may act again (0 when it may act now)."""
        with self._lock:
            last = self._last_seen.get(key)
        if last is None:
            return 0.0
        return max(0.0, self.window_seconds - (self._clock() - last))

    def hit(self, key: str) -> bool:
        """Record an action; False when ``key`` is still cooling down."""
        if self.window_seconds <= 0:
            return True
        with self._lock:
            now = self._clock()
            last = self._last_seen.get(key)
            if last is not None and now - last < self.window_seconds:
                return False
            self._last_seen[key] = now
            # Forget keys whose window has long passed.
            if len(self._last_seen) > 10_000:
                cutoff = now - self.window_seconds
                self._last_seen = {
                    k: t for k, t in self._last_seen.items() if t >= cutoff
                }
            return True

    def forget(self, key: str) -> None:
        """Drop the recorded action for ``key`` so it may act again at once."""
        with self._lock:
            self._last_seen.pop(key, None)
