from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Callable, Optional

from cachetools import LRUCache

from utils import iso_utc_now


log = logging.getLogger("notifications")

Subscriber = Callable[[str, dict[str, Any]], None]


class NotificationHub:
    """
    In-process, best-effort event sink.

    Each topic keeps a bounded backlog that pollers can drain; subscribers are called
    synchronously on publish. At most `max_topics` backlogs are held; the least recently
    used one is dropped first, and draining a topic frees it. Nothing here may raise
    into the publishing operation.
    Owned by the Flask app (app.extensions["notifications"]), created in create_app()
    and closed on shutdown.
    """

    def __init__(self, max_per_topic: int = 200, max_topics: int = 1000):
        self._max = max(1, int(max_per_topic))
        self._topics: LRUCache = LRUCache(maxsize=max(1, int(max_topics)))
        self._subscribers: dict[str, list[Subscriber]] = {}
        self._lock = threading.RLock()
        self._closed = False

    def publish(self, topic: str, payload: dict[str, Any]) -> bool:
        t = str(topic or "").strip()
        if not t:
            return False
        event = {"topic": t, "at": iso_utc_now(), "payload": dict(payload or {})}
        with self._lock:
            if self._closed:
                log.warning("publish after close topic=%s", t)
                return False
            backlog = self._topics.get(t)
            if backlog is None:
                backlog = self._topics[t] = deque(maxlen=self._max)
            backlog.append(event)
            subs = list(self._subscribers.get(t, []))

        for fn in subs:
            try:
                fn(t, event)
            except Exception:
                log.exception("subscriber failed topic=%s", t)
        return True

    def subscribe(self, topic: str, fn: Subscriber) -> Callable[[], None]:
        t = str(topic or "").strip()
        with self._lock:
            self._subscribers.setdefault(t, []).append(fn)

        def _unsubscribe() -> None:
            with self._lock:
                subs = self._subscribers.get(t, [])
                if fn in subs:
                    subs.remove(fn)
                if not subs:
                    self._subscribers.pop(t, None)

        return _unsubscribe

    def drain(self, topic: str) -> list[dict[str, Any]]:
        with self._lock:
            q = self._topics.pop(str(topic or "").strip(), None)
        return list(q or [])

    def pending(self, topic: str) -> int:
        with self._lock:
            return len(self._topics.get(str(topic or "").strip(), ()))

    def topic_count(self) -> int:
        with self._lock:
            return len(self._topics)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._topics.clear()
            self._subscribers.clear()


def employee_topic(employee_id: str) -> str:
    return f"employee:{employee_id}"


def publish_safe(notifier: Optional[NotificationHub], topic: str, payload: dict[str, Any]) -> None:
    if notifier is None:
        return
    try:
        notifier.publish(topic, payload)
    except Exception:
        log.exception("notification publish failed topic=%s", topic)
