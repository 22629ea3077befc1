"""
Source Reliability - Data Models.

============================================================
CORE DATA STRUCTURES
============================================================

- ReliabilityOutcome: result of one cross-validation for a source
- ReliabilityHistoryEntry: one event in a source's bounded history
- SourceReliabilityScore: current counters and derived trust weight
- ReliabilitySummary: aggregate view across all tracked sources

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


# =============================================================
# ENUMS
# =============================================================


class ReliabilityOutcome(str, Enum):
    """
    Outcome of validating one source's reading.
    
    - PASS: reading agreed with the other sources
    - FAIL: source did not respond or returned unusable data
    - DEVIATION: reading disagreed with consensus beyond threshold
    """
    PASS = "pass"
    FAIL = "fail"
    DEVIATION = "deviation"


# =============================================================
# DATA CLASSES
# =============================================================


@dataclass(frozen=True)
class ReliabilityHistoryEntry:
    """One validation event for a source."""
    source_name: str
    validation_result: ReliabilityOutcome
    timestamp: datetime
    deviation_amount: Optional[float] = None
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_name": self.source_name,
            "validation_result": self.validation_result.value,
            "deviation_amount": self.deviation_amount,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class SourceReliabilityScore:
    """
    Reliability counters for one source.
    
    reliability_score = successful_validations / total_validations * 100.
    A source with no history scores 100 with full trust.
    """
    source_name: str
    total_validations: int = 0
    successful_validations: int = 0
    deviation_count: int = 0
    reliability_score: float = 100.0
    trust_weight: float = 1.0
    last_updated: Optional[datetime] = None
    
    @property
    def failure_count(self) -> int:
        return self.total_validations - self.successful_validations - self.deviation_count
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "source_name": self.source_name,
            "total_validations": self.total_validations,
            "successful_validations": self.successful_validations,
            "deviation_count": self.deviation_count,
            "reliability_score": round(self.reliability_score, 2),
            "trust_weight": self.trust_weight,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


@dataclass
class ReliabilitySummary:
    """Aggregate reliability across tracked sources. All zero when empty."""
    total_sources: int = 0
    average_reliability: float = 0.0
    reliable_sources: int = 0
    unreliable_sources: int = 0
    total_validations: int = 0
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_sources": self.total_sources,
            "average_reliability": round(self.average_reliability, 2),
            "reliable_sources": self.reliable_sources,
            "unreliable_sources": self.unreliable_sources,
            "total_validations": self.total_validations,
        }
