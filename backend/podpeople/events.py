from __future__ import annotations

import json
import os
import queue
import threading
from collections import deque
from typing import Any, Deque, Dict, Iterable, Optional, Tuple


class EventHub:
    """In-process fan-out of pod events with a bounded replay buffer.

    Events carrying a ``userId`` are delivered only to that user's
    subscriptions; events without one are broadcast.
    """

    def __init__(self, max_buffer: int = 500, subscriber_queue_size: int | None = None) -> None:
        self._subscribers: Dict[queue.Queue, Optional[str]] = {}
        self._lock = threading.Lock()
        self._buffer: Deque[Tuple[int, Dict[str, Any]]] = deque(maxlen=max_buffer)
        self._next_id = 1
        # Per-subscriber backlog cap.
        self._subscriber_queue_size = int(subscriber_queue_size or max_buffer or 1)

    def subscribe(self, user_id: str | None = None) -> queue.Queue:
        q: queue.Queue = queue.Queue(maxsize=self._subscriber_queue_size)
        with self._lock:
            self._subscribers[q] = user_id
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            self._subscribers.pop(q, None)

    @staticmethod
    def _visible_to(payload: Dict[str, Any], user_id: str | None) -> bool:
        target = payload.get("userId")
        return target is None or target == user_id

    def publish(self, event: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            event_id = self._next_id
            self._next_id += 1
            payload = {**event, "eventId": str(event_id)}
            record = (event_id, payload)
            self._buffer.append(record)
            subscribers = list(self._subscribers.items())
        for q, user_id in subscribers:
            if not self._visible_to(payload, user_id):
                continue
            try:
                q.put_nowait(record)
            except queue.Full:
                # Drop the oldest queued event.
                try:
                    q.get_nowait()
                except queue.Empty:
                    pass
                try:
                    q.put_nowait(record)
                except queue.Full:
                    continue
        return payload

    def replay(self, last_event_id: int, user_id: str | None = None) -> Iterable[Tuple[int, Dict[str, Any]]]:
        return [
            record
            for record in list(self._buffer)
            if record[0] > last_event_id and self._visible_to(record[1], user_id)
        ]

    def oldest_id(self) -> int | None:
        if not self._buffer:
            return None
        return self._buffer[0][0]

    @staticmethod
    def encode(event_id: int | None, event: Dict[str, Any]) -> str:
        payload = json.dumps(event, default=str)
        if event_id is None:
            return f"data: {payload}\n\n"
        return f"id: {event_id}\ndata: {payload}\n\n"


_max_buffer = int(os.environ.get("PODPEOPLE_EVENT_BUFFER", "500"))
_subscriber_queue = int(os.environ.get("PODPEOPLE_EVENT_SUBSCRIBER_QUEUE", str(_max_buffer)))
event_hub = EventHub(max_buffer=_max_buffer, subscriber_queue_size=_subscriber_queue)
