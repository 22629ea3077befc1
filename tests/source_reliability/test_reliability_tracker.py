"""
Tests for the Source Reliability Tracker.

Tests cover:
- Score arithmetic and trust tiers
- History ring bound
- Strictly increasing timestamps
- Unreliable / reliable queries and summary
- Reset and persistence
- Concurrent updates to one source
"""

import asyncio
import threading
import time
from unittest.mock import MagicMock

import pytest

from core.exceptions import ConfigurationError, PersistenceError
from source_reliability import (
    ReliabilityConfig,
    ReliabilityOutcome,
    ReliabilityStore,
    SourceReliabilityTracker,
)
from validation import MarketDataValidator


def record(tracker, source, passes, fails):
    for _ in range(passes):
        tracker.update_reliability(source, "pass")
    for _ in range(fails):
        tracker.update_reliability(source, "fail")


# =============================================================
# TEST: Score Updates
# =============================================================

class TestUpdateReliability:
    """Test counters and score derivation."""
    
    def test_first_pass_scores_100(self, tracker):
        """First successful validation yields a perfect score."""
        score = tracker.update_reliability("CoinGecko", "pass")
        
        assert score.total_validations == 1
        assert score.successful_validations == 1
        assert score.reliability_score == 100.0
        assert score.trust_weight == 1.0
    
    def test_deviation_counts_as_non_success(self, tracker):
        """Deviation increments deviation_count but not successes."""
        tracker.update_reliability("Kraken", "pass")
        score = tracker.update_reliability("Kraken", ReliabilityOutcome.DEVIATION, 0.03)
        
        assert score.total_validations == 2
        assert score.successful_validations == 1
        assert score.deviation_count == 1
        assert score.reliability_score == 50.0
    
    def test_fail_counts(self, tracker):
        """Failures reduce the score without touching deviation_count."""
        record(tracker, "Glassnode", 3, 1)
        score = tracker.get_reliability_score("Glassnode")
        
        assert score.reliability_score == 75.0
        assert score.deviation_count == 0
        assert score.failure_count == 1
    
    def test_rejects_unknown_result(self, tracker):
        """Unknown outcome strings are rejected."""
        with pytest.raises(ValueError):
            tracker.update_reliability("CoinGecko", "maybe")
    
    def test_rejects_empty_source(self, tracker):
        with pytest.raises(ValueError):
            tracker.update_reliability("", "pass")
    
    def test_returned_snapshot_is_detached(self, tracker):
        """Mutating a returned score does not change tracker state."""
        score = tracker.update_reliability("CoinGecko", "pass")
        score.reliability_score = 0
        
        assert tracker.get_reliability_score("CoinGecko").reliability_score == 100.0


# =============================================================
# TEST: Trust Tiers
# =============================================================

class TestTrustWeight:
    """Test the tiered trust mapping."""
    
    @pytest.mark.parametrize("passes,fails,expected_weight", [
        (10, 0, 1.0),
        (9, 1, 1.0),
        (8, 2, 0.9),
        (7, 3, 0.8),
        (6, 4, 0.7),
        (5, 5, 0.6),
        (4, 6, 0.5),
        (0, 10, 0.5),
    ])
    def test_ten_event_sequences(self, tracker, passes, fails, expected_weight):
        """Ten events produce exact percentages and the matching tier."""
        record(tracker, "Source", passes, fails)
        
        assert tracker.get_reliability_score("Source").reliability_score == passes * 10.0
        assert tracker.get_trust_weight("Source") == expected_weight
    
    def test_unknown_source_defaults_to_full_trust(self, tracker):
        """A never-seen source gets weight 1.0."""
        assert tracker.get_trust_weight("NeverSeenSource") == 1.0
    
    def test_weight_is_non_increasing_in_score(self):
        """Lower scores never map to higher weights."""
        config = ReliabilityConfig()
        weights = [config.trust_weight_for(score) for score in range(100, -1, -1)]
        
        assert all(a >= b for a, b in zip(weights, weights[1:]))
        assert weights[0] == 1.0
        assert weights[-1] == 0.5
    
    def test_config_rejects_increasing_weights(self):
        with pytest.raises(ConfigurationError):
            ReliabilityConfig(trust_tiers=((90.0, 0.8), (80.0, 0.9)))


# =============================================================
# TEST: History
# =============================================================

class TestHistory:
    """Test the bounded history ring."""
    
    def test_history_bounded_at_100(self, tracker):
        """150 updates keep only the latest 100 entries."""
        for i in range(150):
            tracker.update_reliability("CoinGecko", "deviation", deviation_amount=float(i))
        
        history = tracker.get_history("CoinGecko")
        
        assert len(history) == 100
        assert history[0].deviation_amount == 50.0
        assert history[-1].deviation_amount == 149.0
        # Counters are not bounded by the ring
        assert tracker.get_reliability_score("CoinGecko").total_validations == 150
    
    def test_history_limit(self, tracker):
        record(tracker, "CoinGecko", 5, 0)
        
        assert len(tracker.get_history("CoinGecko", limit=2)) == 2
        assert tracker.get_history("CoinGecko", limit=0) == []
    
    def test_unknown_source_history_empty(self, tracker):
        assert tracker.get_history("Nope") == []
    
    def test_custom_history_size(self, clock):
        tracker = SourceReliabilityTracker(ReliabilityConfig(history_size=3), clock=clock)
        record(tracker, "A", 5, 0)
        
        assert len(tracker.get_history("A")) == 3


# =============================================================
# TEST: Timestamps
# =============================================================

class TestLastUpdated:
    """Test last_updated ordering."""
    
    def test_strictly_increasing_with_frozen_clock(self, tracker):
        """Rapid calls on a clock that does not move still increase."""
        stamps = [tracker.update_reliability("A", "pass").last_updated for _ in range(5)]
        
        assert all(a < b for a, b in zip(stamps, stamps[1:]))
    
    def test_follows_clock_when_it_advances(self, tracker, clock):
        first = tracker.update_reliability("A", "pass").last_updated
        clock.advance(seconds=60)
        second = tracker.update_reliability("A", "pass").last_updated
        
        assert (second - first).total_seconds() == 60


# =============================================================
# TEST: Queries and Summary
# =============================================================

class TestQueries:
    """Test aggregate queries."""
    
    def test_unreliable_sources_default_threshold(self, tracker):
        """Sources below 70% are unreliable."""
        record(tracker, "Good", 9, 1)
        record(tracker, "Borderline", 7, 3)
        record(tracker, "Bad", 6, 4)
        
        names = [s.source_name for s in tracker.get_unreliable_sources()]
        
        assert names == ["Bad"]
    
    def test_unreliable_sources_custom_threshold(self, tracker):
        record(tracker, "Good", 9, 1)
        record(tracker, "Okay", 8, 2)
        
        names = [s.source_name for s in tracker.get_unreliable_sources(threshold=85)]
        
        assert names == ["Okay"]
    
    def test_reliable_sources(self, tracker):
        record(tracker, "Good", 9, 1)
        record(tracker, "Okay", 8, 2)
        
        assert [s.source_name for s in tracker.get_reliable_sources()] == ["Good"]
    
    def test_summary_empty_tracker(self, tracker):
        """Empty tracker returns all zeros."""
        summary = tracker.get_summary()
        
        assert summary.total_sources == 0
        assert summary.average_reliability == 0.0
        assert summary.reliable_sources == 0
        assert summary.unreliable_sources == 0
        assert summary.total_validations == 0
    
    def test_summary_counts(self, tracker):
        record(tracker, "Good", 10, 0)
        record(tracker, "Bad", 5, 5)
        
        summary = tracker.get_summary()
        
        assert summary.total_sources == 2
        assert summary.average_reliability == 75.0
        assert summary.reliable_sources == 1
        assert summary.unreliable_sources == 1
        assert summary.total_validations == 20


# =============================================================
# TEST: Reset
# =============================================================

class TestReset:
    """Test administrative resets."""
    
    def test_reset_source(self, tracker):
        record(tracker, "A", 1, 3)
        
        assert tracker.reset_source("A") is True
        assert tracker.get_reliability_score("A") is None
        assert tracker.get_trust_weight("A") == 1.0
        assert tracker.reset_source("A") is False
    
    def test_reset_all(self, tracker):
        record(tracker, "A", 1, 0)
        record(tracker, "B", 1, 0)
        
        tracker.reset_all()
        
        assert tracker.get_all_scores() == {}
        assert tracker.get_summary().total_sources == 0


# =============================================================
# TEST: Concurrency
# =============================================================

class TestConcurrency:
    """Test serialized updates per source."""
    
    def test_parallel_updates_keep_counters_consistent(self, tracker):
        """Eight threads updating one source lose no increments."""
        def worker():
            for i in range(250):
                tracker.update_reliability("Shared", "pass" if i % 2 else "fail")
        
        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        
        score = tracker.get_reliability_score("Shared")
        assert score.total_validations == 2000
        assert score.successful_validations == 1000
        assert score.reliability_score == 50.0
        assert len(tracker.get_history("Shared")) == 100


# =============================================================
# TEST: Persistence
# =============================================================

class TestPersistence:
    """Test the durable store integration."""
    
    def test_updates_are_persisted_and_restored(self, session_factory, clock):
        store = ReliabilityStore(session_factory)
        tracker = SourceReliabilityTracker(store=store, clock=clock)
        record(tracker, "CoinGecko", 8, 2)
        
        restored = SourceReliabilityTracker(store=store, clock=clock)
        
        assert restored.load_from_store() == 1
        score = restored.get_reliability_score("CoinGecko")
        assert score.total_validations == 10
        assert score.reliability_score == 80.0
        assert restored.get_trust_weight("CoinGecko") == 0.9
    
    def test_reset_deletes_stored_row(self, session_factory, clock):
        store = ReliabilityStore(session_factory)
        tracker = SourceReliabilityTracker(store=store, clock=clock)
        record(tracker, "A", 1, 0)
        
        tracker.reset_source("A")
        
        assert store.load_all() == []
    
    def test_store_failure_is_logged_not_raised(self, tracker, clock):
        """A failing store does not break the update."""
        store = MagicMock(spec=ReliabilityStore)
        store.save.side_effect = PersistenceError("db down")
        tracker = SourceReliabilityTracker(store=store, clock=clock)
        
        score = tracker.update_reliability("A", "pass")
        
        assert score.total_validations == 1
        store.save.assert_called_once()
    
    def test_stale_snapshot_does_not_overwrite(self, session_factory, clock):
        store = ReliabilityStore(session_factory)
        tracker = SourceReliabilityTracker(store=store, clock=clock)
        first = tracker.update_reliability("A", "pass")
        tracker.update_reliability("A", "fail")
        
        store.save(first)
        
        assert store.load_all()[0].total_validations == 2


# =============================================================
# TEST: Background Writes
# =============================================================

def slow_store(delay):
    store = MagicMock(spec=ReliabilityStore)
    store.save.side_effect = lambda snapshot: time.sleep(delay)
    return store


class TestBackgroundWrites:
    """Test that store writes stay off a running event loop."""
    
    @pytest.mark.asyncio
    async def test_validation_does_not_wait_for_store(self, clock):
        store = slow_store(0.2)
        tracker = SourceReliabilityTracker(store=store, clock=clock)
        validator = MarketDataValidator(tracker=tracker)
        quotes = {
            "CoinGecko": {"price": 100.0},
            "CoinMarketCap": {"price": 100.5},
            "Kraken": {"price": 100.2},
        }
        
        started = time.monotonic()
        result = await validator.validate("BTC", quotes)
        elapsed = time.monotonic() - started
        
        assert result.is_valid
        assert elapsed < 0.15
        assert tracker.pending_writes > 0
        
        await tracker.flush()
        
        assert tracker.pending_writes == 0
        assert store.save.call_count == 3
        tracker.close()
    
    @pytest.mark.asyncio
    async def test_event_loop_keeps_running_during_writes(self, clock):
        store = slow_store(0.05)
        tracker = SourceReliabilityTracker(store=store, clock=clock)
        ticks = 0
        
        async def ticker():
            nonlocal ticks
            while True:
                ticks += 1
                await asyncio.sleep(0.01)
        
        task = asyncio.create_task(ticker())
        for _ in range(4):
            tracker.update_reliability("A", "pass")
        await tracker.flush()
        task.cancel()
        
        assert ticks > 1
        assert store.save.call_count == 4
        tracker.close()
    
    @pytest.mark.asyncio
    async def test_writes_land_in_order(self, session_factory, clock):
        store = ReliabilityStore(session_factory)
        tracker = SourceReliabilityTracker(store=store, clock=clock)
        record(tracker, "A", 3, 1)
        
        await tracker.flush()
        tracker.close()
        
        stored = store.load_all()[0]
        assert stored.total_validations == 4
        assert stored.reliability_score == 75.0
    
    @pytest.mark.asyncio
    async def test_write_failure_is_logged(self, clock):
        store = MagicMock(spec=ReliabilityStore)
        store.save.side_effect = PersistenceError("db down")
        tracker = SourceReliabilityTracker(store=store, clock=clock)
        
        score = tracker.update_reliability("A", "pass")
        await tracker.flush()
        tracker.close()
        
        assert score.total_validations == 1
        store.save.assert_called_once()
    
    def test_without_event_loop_writes_inline(self, clock):
        store = slow_store(0.0)
        tracker = SourceReliabilityTracker(store=store, clock=clock)
        
        tracker.update_reliability("A", "pass")
        
        store.save.assert_called_once()
        assert tracker.pending_writes == 0
