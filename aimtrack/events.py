# aimtrack/events.py

"""
Outbound "new run" signal.

The ingestion core publishes NewRunEvent objects to a RunEvents instance it
is given. How events reach connected clients (WebSocket, SSE, desktop IPC) is
the subscriber's business; the core keeps no client list.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

NEW_RUN = "new-run"


@dataclass(frozen=True)
class NewRunEvent:
    task_name: str
    hash: str
    path: str
    run_id: Optional[int] = None
    type: str = NEW_RUN

    def to_message(self) -> dict:
        return {
            "type": self.type,
            "task_name": self.task_name,
            "hash": self.hash,
            "path": self.path,
            "run_id": self.run_id,
        }


Subscriber = Callable[[NewRunEvent], None]


class RunEvents:
    """Thread-safe fan-out of NewRunEvent to registered callables."""

    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that removes it again."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: NewRunEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("New-run subscriber failed for %s", event.path)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)
