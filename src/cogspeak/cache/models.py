"""Data models for cache storage."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class CacheEntry:
    """Cached audio for one request fingerprint.

    Attributes:
        audio: Synthesized audio bytes
        created_at: When this entry was stored
        last_accessed: When this entry was last returned by a lookup
    """

    audio: bytes
    created_at: datetime = field(default_factory=datetime.now)
    last_accessed: datetime = field(default_factory=datetime.now)

    @property
    def size(self) -> int:
        return len(self.audio)

    def touch(self) -> None:
        self.last_accessed = datetime.now()
