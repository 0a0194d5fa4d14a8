# geoqueue/services/liveness.py
import time
from datetime import datetime
from typing import Callable, Optional

from flask import current_app

from geoqueue.utils.timeutil import UTC_TZ

EXTENSION_KEY = "geoqueue.liveness"

NEVER_CONTACTED = "never_contacted"
HEALTHY = "healthy"
STALE = "stale"


class ProcessorLiveness:
    """
    Last time the processing agent polled for work.

    Process-wide and in memory only: after a restart the agent's state is
    unknown until it polls again. A multi-process deployment needs this
    kept in shared storage instead.
    """

    def __init__(self, healthy_seconds: int = 60, clock: Callable[[], float] = time.time):
        self.healthy_seconds = healthy_seconds
        self._clock = clock
        self._last_contact: Optional[float] = None

    def touch(self) -> None:
        self._last_contact = self._clock()

    @property
    def last_contact(self) -> Optional[float]:
        return self._last_contact

    def is_healthy(self) -> bool:
        last = self._last_contact
        return last is not None and (self._clock() - last) < self.healthy_seconds

    def status(self) -> dict:
        last = self._last_contact
        if last is None:
            return {
                "state": NEVER_CONTACTED,
                "is_healthy": False,
                "last_ping_time": None,
                "seconds_since_last_ping": None,
            }

        elapsed = self._clock() - last
        healthy = elapsed < self.healthy_seconds
        return {
            "state": HEALTHY if healthy else STALE,
            "is_healthy": healthy,
            "last_ping_time": datetime.fromtimestamp(last, UTC_TZ).isoformat(),
            "seconds_since_last_ping": int(elapsed),
        }


def get_liveness() -> ProcessorLiveness:
    return current_app.extensions[EXTENSION_KEY]
