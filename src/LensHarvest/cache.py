# === NAVMAP v1 ===
# {
#   "module": "LensHarvest.cache",
#   "purpose": "Time-bounded cache of decoded JSON payloads with a background sweep.",
#   "sections": [
#     {
#       "id": "cacheentry",
#       "name": "_CacheEntry",
#       "anchor": "class-cacheentry",
#       "kind": "class"
#     },
#     {
#       "id": "ttlcache",
#       "name": "TTLCache",
#       "anchor": "class-ttlcache",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""TTL cache for decoded page payloads.

**Caching behavior**
- Entries are keyed by the fetched URL and hold the decoded JSON payload
- ``get`` evicts lazily: an entry aged ``>= ttl`` is deleted and reported absent
- ``sweep`` deletes every expired entry; a daemon thread runs it every
  ``gc_interval`` seconds once :meth:`TTLCache.start` is called
- A zero/``None`` TTL disables caching entirely (``get`` is always absent,
  ``set`` does nothing)

**Thread safety**
A single lock guards the entry map and is only held for dictionary
operations, so a sweep never blocks lookups for long. The sweep thread is a
daemon and :meth:`TTLCache.close` stops it, so the cache never keeps the
process alive.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

__all__ = ["TTLCache"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _CacheEntry:
    """Cached payload and the clock reading when it was stored."""

    payload: Any
    stored_at: float


class TTLCache:
    """Thread-safe URL → payload cache with lazy and periodic expiry.

    Attributes:
        ttl: Entry lifetime in seconds (0 disables caching).
        gc_interval: Seconds between background sweeps (0 disables the thread).
    """

    def __init__(
        self,
        ttl: Optional[float],
        *,
        gc_interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        on_sweep: Optional[Callable[[], None]] = None,
    ) -> None:
        self.ttl = float(ttl) if ttl else 0.0
        self.gc_interval = float(gc_interval) if gc_interval else 0.0
        self._clock = clock
        self._on_sweep = on_sweep
        self._entries: Dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def enabled(self) -> bool:
        return self.ttl > 0

    def get(self, key: str) -> Optional[Any]:
        """Return the cached payload for ``key`` or ``None`` when absent/expired."""

        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.stored_at >= self.ttl:
                del self._entries[key]
                return None
            return entry.payload

    def set(self, key: str, payload: Any) -> None:
        if not self.enabled or payload is None:
            return
        with self._lock:
            self._entries[key] = _CacheEntry(payload=payload, stored_at=self._clock())

    def invalidate(self, key: str) -> bool:
        """Drop ``key``; returns ``True`` when an entry was removed."""

        with self._lock:
            return self._entries.pop(key, None) is not None

    def sweep(self) -> int:
        """Delete every expired entry and return how many were removed."""

        removed = 0
        if self.enabled:
            now = self._clock()
            with self._lock:
                expired = [
                    key for key, entry in self._entries.items() if now - entry.stored_at >= self.ttl
                ]
                for key in expired:
                    del self._entries[key]
            removed = len(expired)
        if self._on_sweep is not None:
            self._on_sweep()
        if removed:
            logger.debug("Cache sweep removed %d entries", removed, extra={"removed": removed})
        return removed

    def start(self) -> None:
        """Start the background sweep thread (no-op when GC is disabled)."""

        if not self.gc_interval or (self._thread is not None and self._thread.is_alive()):
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._sweep_loop,
            daemon=True,
            name="lensharvest-cache-gc",
        )
        self._thread.start()

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.gc_interval):
            try:
                self.sweep()
            except Exception:  # pragma: no cover - keep the sweeper alive
                logger.exception("Cache sweep failed")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def close(self) -> None:
        """Stop the sweep thread and drop every entry."""

        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        self._thread = None
        self.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries
