# === NAVMAP v1 ===
# {
#   "module": "LensHarvest.network.pacing",
#   "purpose": "Per-host request pacing shared by every caller of one engine.",
#   "sections": [
#     {
#       "id": "hostpacer",
#       "name": "HostPacer",
#       "anchor": "class-hostpacer",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Per-host request pacing.

The pacer keeps a host → last-attempt-start map. Before each attempt a caller
takes the host's lock, sleeps out whatever remains of the minimum delay, stamps
the new start time and releases the lock before issuing the request. Holding
the per-host lock across the wait is what stops two concurrent callers from
both reading the same stale stamp and under-waiting; different hosts never
block each other.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional

__all__ = ["HostPacer"]

logger = logging.getLogger(__name__)


class HostPacer:
    """Thread-safe minimum-delay gate keyed by hostname.

    Attributes:
        min_delay: Minimum seconds between attempt starts for one host.
    """

    def __init__(
        self,
        min_delay: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_delay = max(0.0, float(min_delay))
        self._clock = clock
        self._sleep = sleep
        self._last_started: Dict[str, float] = {}
        self._host_locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, host: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._host_locks.get(host)
            if lock is None:
                lock = threading.Lock()
                self._host_locks[host] = lock
            return lock

    def wait(self, host: str) -> float:
        """Block until ``host`` may be contacted again and stamp the attempt.

        Returns:
            Seconds spent waiting.
        """
        with self._lock_for(host):
            waited = 0.0
            last = self.last_started(host)
            if last is not None:
                remaining = self.min_delay - (self._clock() - last)
                if remaining > 0:
                    logger.debug(
                        "Pacing request",
                        extra={"host": host, "delay_ms": int(remaining * 1000)},
                    )
                    self._sleep(remaining)
                    waited = remaining
            with self._registry_lock:
                self._last_started[host] = self._clock()
            return waited

    def last_started(self, host: str) -> Optional[float]:
        with self._registry_lock:
            return self._last_started.get(host)

    def prune(self, max_age: float) -> int:
        """Forget hosts whose last attempt is older than ``max_age`` seconds."""

        now = self._clock()
        with self._registry_lock:
            stale = [host for host, ts in self._last_started.items() if now - ts >= max_age]
            for host in stale:
                del self._last_started[host]
        return len(stale)

    def clear(self) -> None:
        """Forget every stamp; host locks stay so in-flight waiters keep ordering."""

        with self._registry_lock:
            self._last_started.clear()

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._last_started)
