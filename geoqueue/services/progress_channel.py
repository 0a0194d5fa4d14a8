# geoqueue/services/progress_channel.py
import json
import logging
import queue
from typing import Iterator

from flask import current_app

logger = logging.getLogger(__name__)

EXTENSION_KEY = "geoqueue.progress_channel"

CONNECTED = ": connected\n\n"
HEARTBEAT = ": heartbeat\n\n"


class SubscriberGone(Exception):
    pass


class Subscriber:
    """One connected viewer. Holds a small backlog of undelivered messages."""

    def __init__(self, backlog: int = 100):
        self._queue: queue.Queue = queue.Queue(maxsize=backlog)
        self.closed = False

    def deliver(self, message: str) -> None:
        if self.closed:
            raise SubscriberGone()
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            # cliente que no lee: se considera desconectado
            raise SubscriberGone()

    def next_message(self, timeout: float) -> str:
        """Raises queue.Empty when nothing arrived within timeout."""
        return self._queue.get(timeout=timeout)

    def close(self) -> None:
        self.closed = True


def format_event(data: dict) -> str:
    return f"data: {json.dumps(data)}\n\n"


class ProgressChannel:
    """
    Broadcasts print progress to every connected subscriber.

    At most once, no replay: a subscriber that fails a delivery is dropped
    on the spot. Like the liveness monitor this lives in one process only.
    """

    def __init__(self, heartbeat_seconds: float = 30, backlog: int = 100):
        self.heartbeat_seconds = heartbeat_seconds
        self.backlog = backlog
        self._subscribers: set[Subscriber] = set()

    def subscribe(self) -> Subscriber:
        sub = Subscriber(self.backlog)
        self._subscribers.add(sub)
        return sub

    def unsubscribe(self, sub: Subscriber) -> None:
        sub.close()
        self._subscribers.discard(sub)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def broadcast(self, data: dict) -> int:
        message = format_event(data)
        delivered = 0
        for sub in list(self._subscribers):
            try:
                sub.deliver(message)
                delivered += 1
            except SubscriberGone:
                self._subscribers.discard(sub)
                logger.debug("Dropped disconnected progress subscriber")
        return delivered

    def stream(self, sub: Subscriber) -> Iterator[str]:
        """SSE body for one subscriber; heartbeats fill the quiet periods."""
        try:
            yield CONNECTED
            while not sub.closed:
                try:
                    yield sub.next_message(timeout=self.heartbeat_seconds)
                except queue.Empty:
                    yield HEARTBEAT
        finally:
            self.unsubscribe(sub)


def get_progress_channel() -> ProgressChannel:
    return current_app.extensions[EXTENSION_KEY]
