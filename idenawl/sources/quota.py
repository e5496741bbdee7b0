from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from idenawl.errors import RateLimited

GLOBAL_LIMIT = 1000
GLOBAL_WINDOW_S = 8 * 3600
PER_ADDRESS_LIMIT = 20
PER_ADDRESS_WINDOW_S = 24 * 3600


@dataclass
class _Window:
    started_at: float
    count: int = 0


class FallbackQuota:
    """
    Budget for per-call fallback requests to the public API.

    Two fixed windows: one global, one per address. A window resets lazily on
    the first acquire after it expires. Every acquire that succeeds counts,
    whatever the outcome of the request it guards. Only granted acquires track
    an address, and expired address windows are dropped when the global
    window rolls over.
    """

    def __init__(
        self,
        *,
        global_limit: int = GLOBAL_LIMIT,
        global_window_s: float = GLOBAL_WINDOW_S,
        per_address_limit: int = PER_ADDRESS_LIMIT,
        per_address_window_s: float = PER_ADDRESS_WINDOW_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.global_limit = int(global_limit)
        self.global_window_s = float(global_window_s)
        self.per_address_limit = int(per_address_limit)
        self.per_address_window_s = float(per_address_window_s)
        self._clock = clock
        self._lock = threading.Lock()
        self._global = _Window(started_at=clock())
        self._per_address: Dict[str, _Window] = {}

    def _prune(self, now: float) -> None:
        expired = [k for k, w in self._per_address.items() if now - w.started_at >= self.per_address_window_s]
        for k in expired:
            del self._per_address[k]

    def acquire(self, address: str) -> None:
        key = address.strip().lower()
        with self._lock:
            now = self._clock()
            if now - self._global.started_at >= self.global_window_s:
                self._global = _Window(started_at=now)
                self._prune(now)
            if self._global.count >= self.global_limit:
                raise RateLimited("global fallback budget exhausted")

            w = self._per_address.get(key)
            if w is not None and now - w.started_at >= self.per_address_window_s:
                w = None
            if w is not None and w.count >= self.per_address_limit:
                raise RateLimited(f"fallback budget exhausted for {key}")
            if w is None:
                w = _Window(started_at=now)
                self._per_address[key] = w
            self._global.count += 1
            w.count += 1
