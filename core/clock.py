"""
Core Module - Clock.

============================================================
RESPONSIBILITY
============================================================
Provides a testable UTC clock for every timestamp the engine writes:
reliability updates, alert notifications, cache entries.

- UTC only
- Mockable for testing
- Thread-safe

============================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional
import threading
import time


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Abstract interface for the engine clock."""
    
    @abstractmethod
    def now(self) -> datetime:
        """Get current UTC datetime."""
        pass
    
    @abstractmethod
    def monotonic(self) -> float:
        """Get a monotonic reading in seconds, for TTL arithmetic."""
        pass


# ============================================================
# SYSTEM CLOCK (PRODUCTION)
# ============================================================

class SystemClock(ClockProtocol):
    """Production clock using actual system time."""
    
    def now(self) -> datetime:
        return datetime.now(timezone.utc)
    
    def monotonic(self) -> float:
        return time.monotonic()


# ============================================================
# MOCK CLOCK (TESTING)
# ============================================================

class MockClock(ClockProtocol):
    """
    Mock clock for testing.
    
    Time only moves when the test calls set_time() or advance().
    """
    
    def __init__(self, initial_time: Optional[datetime] = None):
        """
        Initialize mock clock.
        
        Args:
            initial_time: Starting time (defaults to current UTC)
        """
        self._time = initial_time or datetime.now(timezone.utc)
        self._offset = 0.0
        self._lock = threading.Lock()
    
    def now(self) -> datetime:
        with self._lock:
            return self._time
    
    def monotonic(self) -> float:
        with self._lock:
            return self._offset
    
    def set_time(self, new_time: datetime) -> None:
        """Set the current time."""
        with self._lock:
            if new_time.tzinfo is None:
                new_time = new_time.replace(tzinfo=timezone.utc)
            self._time = new_time
    
    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Advance time by the specified amount.
        
        Args:
            seconds: Number of seconds to advance
            **kwargs: Passed to timedelta (hours, minutes, days, etc.)
        """
        with self._lock:
            delta = timedelta(seconds=seconds, **kwargs)
            self._time = self._time + delta
            self._offset += delta.total_seconds()


# ============================================================
# STRICTLY INCREASING TIMESTAMPS
# ============================================================

MIN_TICK = timedelta(microseconds=1)


def next_timestamp(clock: ClockProtocol, previous: Optional[datetime]) -> datetime:
    """
    Return clock.now(), bumped past previous if the clock has not moved.
    
    Rapid repeated calls (or a frozen MockClock) would otherwise
    produce equal timestamps.
    """
    current = clock.now()
    if previous is not None and current <= previous:
        return previous + MIN_TICK
    return current

