import json
import logging
import threading
from typing import Any, Dict, List

import requests
from pywebpush import WebPushException, webpush

from ..models import PushSubscription, Whisper
from ..utils.geo import is_within

logger = logging.getLogger(__name__)

WELCOME_PAYLOAD = {
    "title": "Subscribed!",
    "body": "You’ll now get whispers nearby.",
}
NEARBY_TITLE = "New nearby whisper 💬"

# Push services answer with these once a subscription is dead.
GONE_STATUSES = (404, 410)


class PushNotConfigured(RuntimeError):
    """Raised when VAPID keys are missing."""


class PushService:
    """Web push via pywebpush, with subscriptions held in memory."""

    def __init__(self, private_key: str, public_key: str = "", subject: str = "mailto:you@example.com"):
        self.private_key = private_key
        self.public_key = public_key
        self.subject = subject
        self._subscriptions: Dict[str, PushSubscription] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.private_key)

    @property
    def subscriptions(self) -> List[PushSubscription]:
        with self._lock:
            return list(self._subscriptions.values())

    def send(self, subscription: PushSubscription, payload: Dict[str, Any]) -> None:
        """Send one notification; WebPushException propagates."""
        if not self.enabled:
            raise PushNotConfigured("VAPID private key is not set")
        webpush(
            subscription_info=subscription.subscription_info(),
            data=json.dumps(payload),
            vapid_private_key=self.private_key,
            vapid_claims={"sub": self.subject},
        )

    def subscribe(self, subscription: PushSubscription) -> None:
        """Remember the subscription and greet it."""
        if not self.enabled:
            raise PushNotConfigured("VAPID private key is not set")
        with self._lock:
            self._subscriptions[subscription.endpoint] = subscription
        logger.info("Registered push subscription (%s total)", len(self._subscriptions))
        self._deliver(subscription, WELCOME_PAYLOAD)

    def unsubscribe(self, endpoint: str) -> bool:
        with self._lock:
            return self._subscriptions.pop(endpoint, None) is not None

    def notify_nearby(self, whisper: Whisper, radius_m: float) -> int:
        """
        Tell subscribers within ``radius_m`` of a new whisper about it.

        Returns how many notifications were delivered.
        """
        if not self.enabled:
            return 0

        payload = {"title": NEARBY_TITLE, "body": whisper.text}
        delivered = 0
        for sub in self.subscriptions:
            if not sub.has_location:
                continue
            if not is_within(sub.lat, sub.lng, whisper.lat, whisper.lng, radius_m):
                continue
            if self._deliver(sub, payload):
                delivered += 1
        return delivered

    def _deliver(self, subscription: PushSubscription, payload: Dict[str, Any]) -> bool:
        try:
            self.send(subscription, payload)
        except WebPushException as exc:
            status = getattr(exc.response, "status_code", None)
            if status in GONE_STATUSES:
                logger.info("Dropping expired push subscription (%s)", status)
                self.unsubscribe(subscription.endpoint)
            else:
                logger.warning("Push delivery failed: %s", exc)
            return False
        except requests.RequestException as exc:
            logger.warning("Push service unreachable: %s", exc)
            return False
        return True
