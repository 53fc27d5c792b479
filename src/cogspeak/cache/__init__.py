"""In-memory audio cache for cogspeak."""

from .manager import AudioCache, CacheStats
from .models import CacheEntry

__all__ = ["AudioCache", "CacheEntry", "CacheStats"]
