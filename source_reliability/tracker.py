"""
Source Reliability - Tracker.

============================================================
PURPOSE
============================================================

Converts the pass / fail / deviation event stream of each data
source into a reliability score and a trust weight that validators
use for weighted consensus.

============================================================
USAGE
============================================================

```python
tracker = SourceReliabilityTracker()

tracker.update_reliability("CoinGecko", "pass")
tracker.update_reliability("CoinMarketCap", "deviation", deviation_amount=0.03)

weight = tracker.get_trust_weight("CoinGecko")     # 1.0
unreliable = tracker.get_unreliable_sources()      # score < 70
summary = tracker.get_summary()
```

============================================================
CONCURRENCY
============================================================

Each source owns a lock guarding its counters and history ring, so
updates to one source are serialized while different sources
proceed in parallel. The registry lock is only held to look up or
create a source's state. Persistence runs after the source lock is
released.

Store writes never block an event loop: while one is running on the
calling thread, writes go to a single background writer thread (so
they land in submission order) and flush() awaits them. Without a
running loop the write happens inline.

============================================================
"""

import asyncio
import logging
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Union

from core.clock import ClockProtocol, SystemClock, next_timestamp
from core.exceptions import PersistenceError

from .config import ReliabilityConfig
from .models import (
    ReliabilityHistoryEntry,
    ReliabilityOutcome,
    ReliabilitySummary,
    SourceReliabilityScore,
)
from .store import ReliabilityStore


logger = logging.getLogger(__name__)


class _SourceState:
    """Mutable per-source state. Only touched while holding lock."""
    
    __slots__ = ("score", "history", "lock")
    
    def __init__(self, source_name: str, history_size: int) -> None:
        self.score = SourceReliabilityScore(source_name=source_name)
        self.history: Deque[ReliabilityHistoryEntry] = deque(maxlen=history_size)
        self.lock = threading.Lock()


class SourceReliabilityTracker:
    """
    Tracks per-source reliability and derives trust weights.
    
    Instances are independent; construct one per process (or per test)
    and pass it to the validators that need it.
    """
    
    def __init__(
        self,
        config: Optional[ReliabilityConfig] = None,
        store: Optional[ReliabilityStore] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        """
        Initialize tracker.
        
        Args:
            config: Reliability configuration
            store: Optional durable store for the current scores
            clock: Clock for last_updated timestamps
        """
        self._config = config or ReliabilityConfig()
        self._store = store
        self._clock = clock or SystemClock()
        
        self._sources: Dict[str, _SourceState] = {}
        self._registry_lock = threading.Lock()

        self._writer: Optional[ThreadPoolExecutor] = None
        self._pending_writes: Set[Future] = set()
        self._writes_lock = threading.Lock()

    @property
    def config(self) -> ReliabilityConfig:
        return self._config
    
    # =========================================================
    # STATE ACCESS
    # =========================================================
    
    def _get_or_create(self, source_name: str) -> _SourceState:
        with self._registry_lock:
            state = self._sources.get(source_name)
            if state is None:
                state = _SourceState(source_name, self._config.history_size)
                self._sources[source_name] = state
            return state
    
    def _get(self, source_name: str) -> Optional[_SourceState]:
        with self._registry_lock:
            return self._sources.get(source_name)
    
    def _states(self) -> List[_SourceState]:
        with self._registry_lock:
            return list(self._sources.values())
    
    # =========================================================
    # UPDATES
    # =========================================================
    
    def update_reliability(
        self,
        source_name: str,
        result: Union[ReliabilityOutcome, str],
        deviation_amount: Optional[float] = None,
    ) -> SourceReliabilityScore:
        """
        Record one validation outcome for a source.
        
        Args:
            source_name: Name of the data source
            result: pass, fail or deviation
            deviation_amount: Relative deviation from consensus, if measured
            
        Returns:
            Snapshot of the source's score after the update
            
        Raises:
            ValueError: Empty source name or unknown result
        """
        if not source_name:
            raise ValueError("source_name must not be empty")
        outcome = ReliabilityOutcome(result)
        
        state = self._get_or_create(source_name)
        with state.lock:
            score = state.score
            score.total_validations += 1
            if outcome == ReliabilityOutcome.PASS:
                score.successful_validations += 1
            elif outcome == ReliabilityOutcome.DEVIATION:
                score.deviation_count += 1
            
            score.reliability_score = (
                score.successful_validations * 100.0 / score.total_validations
            )
            score.trust_weight = self._config.trust_weight_for(score.reliability_score)
            score.last_updated = next_timestamp(self._clock, score.last_updated)
            
            state.history.append(
                ReliabilityHistoryEntry(
                    source_name=source_name,
                    validation_result=outcome,
                    deviation_amount=deviation_amount,
                    timestamp=score.last_updated,
                )
            )
            snapshot = replace(score)
        
        logger.debug(
            f"Reliability updated: {source_name} {outcome.value} -> "
            f"{snapshot.reliability_score:.1f}% (weight {snapshot.trust_weight})"
        )
        
        if self._store is not None:
            self._write(f"persist reliability for {source_name}", self._store.save, snapshot)

        return snapshot

    # =========================================================
    # PERSISTENCE
    # =========================================================

    def _write(self, description: str, operation: Callable[..., Any], *args: Any) -> None:
        """Run a store operation off the event loop when one is running."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self._run_write(description, operation, *args)
            return

        with self._writes_lock:
            if self._writer is None:
                self._writer = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="reliability-writer"
                )
            future = self._writer.submit(self._run_write, description, operation, *args)
            self._pending_writes.add(future)
        future.add_done_callback(self._on_write_done)

    @staticmethod
    def _run_write(description: str, operation: Callable[..., Any], *args: Any) -> None:
        try:
            operation(*args)
        except PersistenceError as e:
            logger.error(f"Failed to {description}: {e}")

    def _on_write_done(self, future: Future) -> None:
        with self._writes_lock:
            self._pending_writes.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Reliability write failed: {error}")

    @property
    def pending_writes(self) -> int:
        with self._writes_lock:
            return len(self._pending_writes)

    async def flush(self) -> None:
        """Wait for every background store write."""
        with self._writes_lock:
            pending = list(self._pending_writes)
        if pending:
            await asyncio.gather(
                *(asyncio.wrap_future(f) for f in pending), return_exceptions=True
            )

    def close(self) -> None:
        """Finish outstanding writes and stop the writer thread."""
        with self._writes_lock:
            writer, self._writer = self._writer, None
        if writer is not None:
            writer.shutdown(wait=True)

    # =========================================================
    # QUERIES
    # =========================================================
    
    def get_trust_weight(self, source_name: str) -> float:
        """
        Get the trust weight for a source.
        
        Unknown sources get the optimistic default (1.0).
        """
        state = self._get(source_name)
        if state is None:
            return self._config.unknown_source_weight
        with state.lock:
            return self._config.trust_weight_for(state.score.reliability_score)
    
    def get_reliability_score(self, source_name: str) -> Optional[SourceReliabilityScore]:
        """Get a copy of a source's score, or None if never seen."""
        state = self._get(source_name)
        if state is None:
            return None
        with state.lock:
            return replace(state.score)
    
    def get_all_scores(self) -> Dict[str, SourceReliabilityScore]:
        scores = {}
        for state in self._states():
            with state.lock:
                scores[state.score.source_name] = replace(state.score)
        return scores
    
    def get_unreliable_sources(
        self,
        threshold: Optional[float] = None,
    ) -> List[SourceReliabilityScore]:
        """
        Get sources whose reliability score is below threshold.
        
        Args:
            threshold: Score cutoff (defaults to config, 70)
            
        Returns:
            Matching scores, least reliable first
        """
        if threshold is None:
            threshold = self._config.unreliable_threshold
        matches = [s for s in self.get_all_scores().values() if s.reliability_score < threshold]
        return sorted(matches, key=lambda s: s.reliability_score)
    
    def get_reliable_sources(
        self,
        threshold: Optional[float] = None,
    ) -> List[SourceReliabilityScore]:
        """Get sources scoring at or above threshold (defaults to 90), most reliable first."""
        if threshold is None:
            threshold = self._config.reliable_threshold
        matches = [s for s in self.get_all_scores().values() if s.reliability_score >= threshold]
        return sorted(matches, key=lambda s: s.reliability_score, reverse=True)
    
    def get_history(
        self,
        source_name: str,
        limit: Optional[int] = None,
    ) -> List[ReliabilityHistoryEntry]:
        """
        Get a source's recent history, oldest first.
        
        Args:
            source_name: Name of the data source
            limit: Return only the most recent N entries
        """
        state = self._get(source_name)
        if state is None:
            return []
        with state.lock:
            entries = list(state.history)
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries
    
    def get_summary(self) -> ReliabilitySummary:
        scores = list(self.get_all_scores().values())
        if not scores:
            return ReliabilitySummary()
        
        return ReliabilitySummary(
            total_sources=len(scores),
            average_reliability=sum(s.reliability_score for s in scores) / len(scores),
            reliable_sources=sum(
                1 for s in scores if s.reliability_score >= self._config.reliable_threshold
            ),
            unreliable_sources=sum(
                1 for s in scores if s.reliability_score < self._config.unreliable_threshold
            ),
            total_validations=sum(s.total_validations for s in scores),
        )
    
    # =========================================================
    # ADMINISTRATION
    # =========================================================
    
    def reset_source(self, source_name: str) -> bool:
        """
        Forget a source's score and history.
        
        Returns:
            True if the source was tracked
        """
        with self._registry_lock:
            removed = self._sources.pop(source_name, None)
        
        if removed is None:
            return False
        
        logger.info(f"Reliability reset for source: {source_name}")
        if self._store is not None:
            self._write(f"delete stored reliability for {source_name}", self._store.delete, source_name)
        return True
    
    def reset_all(self) -> None:
        """Forget every source."""
        with self._registry_lock:
            count = len(self._sources)
            self._sources.clear()
        
        logger.info(f"Reliability reset for all sources ({count})")
        if self._store is not None:
            self._write("clear stored reliability", self._store.delete_all)
    
    def load_from_store(self) -> int:
        """
        Restore scores from the durable store.
        
        History is not persisted, so restored sources start with an
        empty history ring.
        
        Returns:
            Number of sources restored
            
        Raises:
            PersistenceError: Store could not be read
        """
        if self._store is None:
            return 0
        
        restored = self._store.load_all()
        for stored in restored:
            state = self._get_or_create(stored.source_name)
            with state.lock:
                stored.trust_weight = self._config.trust_weight_for(stored.reliability_score)
                state.score = stored
        
        logger.info(f"Restored reliability for {len(restored)} sources")
        return len(restored)
    
    def to_dict(self) -> Dict:
        return {
            "summary": self.get_summary().to_dict(),
            "sources": {name: s.to_dict() for name, s in self.get_all_scores().items()},
        }
