from __future__ import annotations
import threading
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Optional

import pandas as pd
"""
In-memory dataset store.  One instance is created by the app factory and
shared through ``app.state``; entries expire after ``ttl_seconds`` without
access and the least recently used entry is evicted past ``max_entries``.
"""

from insightstream.errors import DatasetNotFoundError


@dataclass
class DatasetEntry:
    data_id: str
    file_name: str
    frame: pd.DataFrame
    created_at: float
    touched_at: float = field(default=0.0)

    @property
    def row_count(self) -> int:
        return int(len(self.frame))


class DatasetStore:
    def __init__(self, ttl_seconds: int = 3600, max_entries: int = 50,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: "OrderedDict[str, DatasetEntry]" = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, data_id: object) -> bool:
        with self._lock:
            entry = self._entries.get(data_id)  # type: ignore[arg-type]
            return entry is not None and not self._expired(entry, self._clock())

    def _expired(self, entry: DatasetEntry, now: float) -> bool:
        return self.ttl_seconds > 0 and now - entry.touched_at > self.ttl_seconds

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            dead = [k for k, e in self._entries.items() if self._expired(e, now)]
            for k in dead:
                del self._entries[k]
            return len(dead)

    def add(self, frame: pd.DataFrame, file_name: str) -> DatasetEntry:
        with self._lock:
            self.purge_expired()
            now = self._clock()
            entry = DatasetEntry(
                data_id=uuid.uuid4().hex,
                file_name=file_name,
                frame=frame,
                created_at=now,
                touched_at=now,
            )
            self._entries[entry.data_id] = entry
            while self.max_entries > 0 and len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
            return entry

    def get(self, data_id: Optional[str]) -> DatasetEntry:
        with self._lock:
            entry = self._entries.get(data_id) if data_id else None
            now = self._clock()
            if entry is None or self._expired(entry, now):
                if entry is not None:
                    del self._entries[entry.data_id]
                raise DatasetNotFoundError(f"Dataset not found: {data_id}")
            entry.touched_at = now
            self._entries.move_to_end(entry.data_id)
            return entry

    def update(self, data_id: str, frame: pd.DataFrame) -> DatasetEntry:
        with self._lock:
            entry = self.get(data_id)
            entry.frame = frame
            return entry

    def delete(self, data_id: str) -> bool:
        with self._lock:
            return self._entries.pop(data_id, None) is not None
