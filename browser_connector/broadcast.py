"""
Event Broadcaster

Fans captured events out to every live observer.

Delivery is best-effort: a closed subscriber or a failed send is
skipped for that publish and delivery continues with the rest.
Removing subscribers is the transport's job (unsubscribe on disconnect).
"""

import json
import sys
import threading
from typing import Any, Dict, List, Protocol


class Subscriber(Protocol):
    """One live observer connection, owned by the transport."""

    @property
    def is_open(self) -> bool:
        ...

    def send(self, data: str) -> None:
        ...


class Broadcaster:
    """Subscriber registry keyed by handle identity."""

    def __init__(self):
        self._subscribers: Dict[int, Subscriber] = {}
        self._lock = threading.Lock()

    def subscribe(self, handle: Subscriber):
        with self._lock:
            self._subscribers[id(handle)] = handle

    def unsubscribe(self, handle: Subscriber):
        with self._lock:
            if self._subscribers.get(id(handle)) is handle:
                del self._subscribers[id(handle)]

    def subscribers(self) -> List[Subscriber]:
        with self._lock:
            return list(self._subscribers.values())

    def __contains__(self, handle: Subscriber) -> bool:
        with self._lock:
            return self._subscribers.get(id(handle)) is handle

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    @staticmethod
    def serialize(event: Dict[str, Any]) -> str:
        return json.dumps(event, default=str)

    def publish(self, event: Dict[str, Any]) -> int:
        """Send event to every open subscriber. Returns deliveries made."""
        data = self.serialize(event)
        delivered = 0
        for handle in self.subscribers():
            if self._deliver(handle, data):
                delivered += 1
        return delivered

    def send_to(self, handle: Subscriber, event: Dict[str, Any]) -> bool:
        """Send event to a single subscriber."""
        return self._deliver(handle, self.serialize(event))

    @staticmethod
    def _deliver(handle: Subscriber, data: str) -> bool:
        if not handle.is_open:
            return False
        try:
            handle.send(data)
        except Exception as e:
            print(f"[!] Broadcast to subscriber failed, skipping: {e!r}", file=sys.stderr)
            return False
        return True
