from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[], None]


@dataclass(eq=False)
class Subscription:
    """Handle returned by ``ChangeFeed.subscribe``; ``cancel()`` stops delivery."""

    id: int
    topic: str
    _feed: "ChangeFeed" = field(repr=False)

    @property
    def active(self) -> bool:
        return self._feed.is_subscribed(self)

    def cancel(self) -> None:
        self._feed.unsubscribe(self)


class ChangeFeed:
    """Queues change notifications and delivers them when drained.

    ``publish`` may be called from any thread; callbacks only run inside
    ``drain``, on the thread that owns the session.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, dict[int, ChangeCallback]] = {}
        self._pending: deque[str] = deque()
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, topic: str, on_change: ChangeCallback) -> Subscription:
        with self._lock:
            subscription = Subscription(id=next(self._ids), topic=topic, _feed=self)
            self._subscribers.setdefault(topic, {})[subscription.id] = on_change
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscribers.get(subscription.topic, {}).pop(subscription.id, None)

    def is_subscribed(self, subscription: Subscription) -> bool:
        with self._lock:
            return subscription.id in self._subscribers.get(subscription.topic, {})

    def publish(self, topic: str) -> None:
        with self._lock:
            self._pending.append(topic)

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def drain(self) -> int:
        """Deliver queued notifications; returns how many callbacks ran."""
        delivered = 0
        while True:
            with self._lock:
                if not self._pending:
                    return delivered
                topic = self._pending.popleft()
                callbacks = list(self._subscribers.get(topic, {}).values())
            for callback in callbacks:
                try:
                    callback()
                except Exception:
                    logger.exception("Change handler for topic %s failed", topic)
                delivered += 1
