from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from time import time

from backend.app.services.playlist_extractors import PlaylistInfo

DEFAULT_CACHE_TTL_SECONDS = 30 * 60


@dataclass(frozen=True)
class CacheEntry:
    info: PlaylistInfo
    captured_at: float


class PlaylistCache:
    """In-process playlist cache with a fixed time-to-live.

    Expired entries are treated as absent on read but stay in the map until the
    same id is written again or the cache is cleared.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = Lock()
        self._entries: dict[str, CacheEntry] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def get(self, playlist_id: str) -> PlaylistInfo | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(playlist_id)
        if entry is None:
            return None
        if now - entry.captured_at >= self._ttl_seconds:
            return None
        return entry.info

    def set(self, playlist_id: str, info: PlaylistInfo) -> None:
        entry = CacheEntry(info=info, captured_at=self._clock())
        with self._lock:
            self._entries[playlist_id] = entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
