"""
Source Reliability Tracker.

============================================================
PURPOSE
============================================================
Turns each source's rolling pass / fail / deviation history into a
reliability score (percentage of passes) and a tiered trust weight
used for weighted consensus across sources.

============================================================
COMPONENTS
============================================================
- SourceReliabilityTracker: injected, thread-safe state object
- ReliabilityConfig: trust tiers and thresholds
- ReliabilityStore: optional SQLAlchemy persistence

============================================================
"""

from .config import DEFAULT_TRUST_TIERS, ReliabilityConfig
from .models import (
    ReliabilityHistoryEntry,
    ReliabilityOutcome,
    ReliabilitySummary,
    SourceReliabilityScore,
)
from .store import ReliabilityStore
from .tracker import SourceReliabilityTracker

__all__ = [
    "DEFAULT_TRUST_TIERS",
    "ReliabilityConfig",
    "ReliabilityHistoryEntry",
    "ReliabilityOutcome",
    "ReliabilitySummary",
    "SourceReliabilityScore",
    "ReliabilityStore",
    "SourceReliabilityTracker",
]
