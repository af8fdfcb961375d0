"""
Loop-suppression cache.

A small key → timestamp store shared by the inbound skip filter (reads) and
the outbound upload path (writes).  The upload path sweeps out entries
older than a minute before registering new ones; between sweeps a
lookup only counts as a hit when the entry is younger than the TTL the caller
asks for.  The store is capacity-bounded so it cannot grow without limit.
"""

import threading
import time
from collections import OrderedDict
from typing import Callable

FILE_ID_TTL = 60.0
FILE_NAME_TTL = 10.0

_DEFAULT_CAPACITY = 5000


def file_id_key(file_id: str) -> str:
    return "file" + file_id


def file_name_key(name: str) -> str:
    return "filename" + name


class LoopCache:

    def __init__(
        self,
        capacity: int = _DEFAULT_CAPACITY,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._capacity = capacity
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, float] = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def add(self, key: str) -> None:
        """Record *key* as seen now, replacing any older timestamp."""
        now = self._clock()
        with self._lock:
            self._entries[key] = now
            self._entries.move_to_end(key)
            while len(self._entries) > self._capacity:
                self._entries.popitem(last=False)

    def get(self, key: str) -> float | None:
        with self._lock:
            return self._entries.get(key)

    def seen_within(self, key: str, ttl: float) -> bool:
        """True if *key* was added less than *ttl* seconds ago."""
        ts = self.get(key)
        if ts is None:
            return False
        return self._clock() - ts < ttl

    def sweep(self, max_age: float = FILE_ID_TTL) -> int:
        """Drop entries older than *max_age*; return how many were removed."""
        cutoff = self._clock() - max_age
        with self._lock:
            stale = [k for k, ts in self._entries.items() if ts <= cutoff]
            for k in stale:
                del self._entries[k]
        return len(stale)

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------

    def remember_upload_name(self, name: str) -> None:
        self.add(file_name_key(name))

    def remember_upload_id(self, file_id: str) -> None:
        self.add(file_id_key(file_id))

    def is_own_file(self, file_id: str, name: str) -> bool:
        """Match by id within a minute, else by name within ten seconds."""
        if file_id and self.seen_within(file_id_key(file_id), FILE_ID_TTL):
            return True
        return bool(name) and self.seen_within(file_name_key(name), FILE_NAME_TTL)
