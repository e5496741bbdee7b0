from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Iterator, Optional, Tuple


class ReadWriteLock:
    """Many readers or one writer. Waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass(frozen=True)
class WhitelistState:
    epoch: int
    addresses: Tuple[str, ...]
    merkle_root: str
    threshold: Decimal
    version: int = 0


class CurrentWhitelist:
    """The whitelist being served. Readers get an immutable snapshot."""

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._state: Optional[WhitelistState] = None
        self._version = 0

    def get(self) -> Optional[WhitelistState]:
        with self._lock.read():
            return self._state

    def swap(self, state: WhitelistState) -> WhitelistState:
        with self._lock.write():
            self._version += 1
            self._state = replace(state, addresses=tuple(state.addresses), version=self._version)
            return self._state
