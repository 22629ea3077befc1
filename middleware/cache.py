"""
Validation Cache.

In-process TTL cache for validation results, keyed by caller
(typically "<domain>:<symbol>").
"""

import logging
import threading
from typing import Any, Dict, Optional, Tuple

from core.clock import ClockProtocol, SystemClock


logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 5 * 60 * 1000


class ValidationCache:
    """
    Thread-safe TTL cache.
    
    Expired entries are evicted on read, and set() prunes every entry
    older than default_ttl_ms so keys that are never read again do not
    accumulate. A per-read ttl_ms can shorten the lifetime, not extend it
    past default_ttl_ms.
    """
    
    def __init__(self, clock: Optional[ClockProtocol] = None, default_ttl_ms: float = DEFAULT_TTL_MS):
        self._clock = clock or SystemClock()
        self._default_ttl_ms = default_ttl_ms
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()
    
    def get(self, key: str, ttl_ms: Optional[float] = None) -> Optional[Any]:
        """
        Cached value for key, or None if absent or older than ttl_ms.
        
        A ttl_ms of 0 always misses.
        """
        ttl_ms = self._default_ttl_ms if ttl_ms is None else ttl_ms
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, stored_at = entry
            age_ms = (self._clock.monotonic() - stored_at) * 1000
            if ttl_ms <= 0 or age_ms >= ttl_ms:
                del self._entries[key]
                return None
            return value
    
    def set(self, key: str, value: Any) -> None:
        now = self._clock.monotonic()
        with self._lock:
            pruned = self._prune(now)
            self._entries[key] = (value, now)
        if pruned:
            logger.debug(f"Validation cache pruned {pruned} expired entries")
    
    def _prune(self, now: float) -> int:
        expired = [
            key for key, (_, stored_at) in self._entries.items()
            if (now - stored_at) * 1000 >= self._default_ttl_ms
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)
    
    def clear(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)
        logger.debug(f"Validation cache cleared: {key or 'all'}")
    
    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
