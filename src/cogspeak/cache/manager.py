"""LRU audio cache keyed by request fingerprint.

Holds two limits together: entry count never exceeds ``max_entries`` and the
summed audio size never exceeds ``max_bytes``. Entries are kept in an
OrderedDict in last-access order, so the least recently used entry is always
at the front.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass

from .models import CacheEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache counters."""

    entries: int
    total_bytes: int
    max_entries: int
    max_bytes: int
    hits: int
    misses: int
    evictions: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


class AudioCache:
    """Thread-safe LRU cache for synthesized audio.

    One lock covers the whole cache. It only guards dictionary bookkeeping
    (O(1) per lookup, O(k) per eviction pass); callers never hold it while
    talking to a backend.

    Example:
        cache = AudioCache(max_entries=100, max_bytes=10 * 1024 * 1024)
        key = request.fingerprint()
        audio = cache.get(key)
        if audio is None:
            audio = await engine.synthesize(request.text, request.voice)
            cache.put(key, audio)
    """

    def __init__(
        self,
        max_entries: int = 1000,
        max_bytes: int = 100 * 1024 * 1024,
        cleanup_fraction: float = 0.1,
    ) -> None:
        """Initialize the cache.

        Args:
            max_entries: Maximum number of cached entries (>= 1)
            max_bytes: Maximum summed audio size in bytes (>= 1)
            cleanup_fraction: Minimum fraction of entries removed by one
                cleanup pass, in (0.0, 1.0]

        Raises:
            ValueError: If a limit is out of range
        """
        if max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {max_entries}")
        if max_bytes < 1:
            raise ValueError(f"max_bytes must be at least 1, got {max_bytes}")
        if not 0.0 < cleanup_fraction <= 1.0:
            raise ValueError(
                f"cleanup_fraction must be in (0.0, 1.0], got {cleanup_fraction}"
            )

        self.max_entries = max_entries
        self.max_bytes = max_bytes
        self.cleanup_fraction = cleanup_fraction
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._total_bytes = 0
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str) -> bytes | None:
        """Return cached audio for ``key`` and mark it recently used."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            entry.touch()
            self._entries.move_to_end(key)
            self._hits += 1
            audio = entry.audio

        logger.debug(f"Cache hit for {key[:12]} ({len(audio)} bytes)")
        return audio

    def put(self, key: str, audio: bytes) -> bool:
        """Insert or replace the audio stored under ``key``.

        Args:
            key: Request fingerprint
            audio: Audio bytes to store

        Returns:
            True if stored, False if the audio alone exceeds ``max_bytes``
        """
        size = len(audio)
        if size > self.max_bytes:
            logger.warning(
                f"Not caching {key[:12]}: {size} bytes exceeds cache budget of "
                f"{self.max_bytes} bytes"
            )
            return False

        with self._lock:
            previous = self._entries.pop(key, None)
            if previous is not None:
                self._total_bytes -= previous.size

            if (
                len(self._entries) + 1 > self.max_entries
                or self._total_bytes + size > self.max_bytes
            ):
                evicted = self._cleanup(size)
            else:
                evicted = 0

            self._entries[key] = CacheEntry(audio=audio)
            self._total_bytes += size
            total = self._total_bytes
            count = len(self._entries)

        if evicted:
            logger.debug(f"Evicted {evicted} cache entries to make room for {key[:12]}")
        logger.debug(f"Cached {key[:12]} ({size} bytes, {count} entries, {total} bytes total)")
        return True

    def _cleanup(self, incoming: int) -> int:
        """Evict least recently used entries to fit ``incoming`` bytes.

        Must be called with the lock held. Removes entries until both limits
        hold with the new entry included and at least the cleanup quota has
        been evicted.
        """
        quota = max(1, int(len(self._entries) * self.cleanup_fraction))
        evicted = 0
        while self._entries and (
            evicted < quota
            or len(self._entries) + 1 > self.max_entries
            or self._total_bytes + incoming > self.max_bytes
        ):
            _, entry = self._entries.popitem(last=False)
            self._total_bytes -= entry.size
            evicted += 1
        self._evictions += evicted
        return evicted

    def remove(self, key: str) -> bool:
        """Drop ``key`` from the cache; returns True if it was present."""
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None:
                return False
            self._total_bytes -= entry.size
            return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._total_bytes = 0
        logger.debug("Cache cleared")

    @property
    def total_bytes(self) -> int:
        with self._lock:
            return self._total_bytes

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                entries=len(self._entries),
                total_bytes=self._total_bytes,
                max_entries=self.max_entries,
                max_bytes=self.max_bytes,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries
