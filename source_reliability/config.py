"""
Source Reliability - Configuration.

============================================================
CONFIGURABLE TRUST TIERS
============================================================

Trust weight is a step function of reliability score:

    [90, 100] -> 1.0
    [80, 90)  -> 0.9
    [70, 80)  -> 0.8
    [60, 70)  -> 0.7
    [50, 60)  -> 0.6
    [0, 50)   -> 0.5

Configuration can be loaded from:
- Default values
- VeritasSettings (history size and thresholds)

============================================================
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple

from core.exceptions import ConfigurationError
from core.settings import VeritasSettings


DEFAULT_TRUST_TIERS: Tuple[Tuple[float, float], ...] = (
    (90.0, 1.0),
    (80.0, 0.9),
    (70.0, 0.8),
    (60.0, 0.7),
    (50.0, 0.6),
)


@dataclass
class ReliabilityConfig:
    """
    Configuration for the reliability tracker.
    
    trust_tiers holds (minimum score, weight) pairs, highest first.
    Scores below every tier get floor_weight.
    """
    history_size: int = 100
    reliable_threshold: float = 90.0
    unreliable_threshold: float = 70.0
    trust_tiers: Tuple[Tuple[float, float], ...] = field(
        default_factory=lambda: DEFAULT_TRUST_TIERS
    )
    floor_weight: float = 0.5
    unknown_source_weight: float = 1.0
    
    def __post_init__(self) -> None:
        """Validate tiers are ordered and weights never increase as score drops."""
        if self.history_size < 1:
            raise ConfigurationError("history_size", self.history_size, "must be >= 1")
        
        previous_score, previous_weight = 101.0, float("inf")
        for min_score, weight in self.trust_tiers:
            if min_score >= previous_score:
                raise ConfigurationError(
                    "trust_tiers", self.trust_tiers, "tiers must be ordered by descending score"
                )
            if weight > previous_weight:
                raise ConfigurationError(
                    "trust_tiers", self.trust_tiers, "weights must not increase as score drops"
                )
            previous_score, previous_weight = min_score, weight
        
        if self.floor_weight > previous_weight:
            raise ConfigurationError(
                "floor_weight", self.floor_weight, "must not exceed the lowest tier weight"
            )
    
    def trust_weight_for(self, reliability_score: float) -> float:
        """Map a reliability score to its trust weight."""
        for min_score, weight in self.trust_tiers:
            if reliability_score >= min_score:
                return weight
        return self.floor_weight
    
    @classmethod
    def from_settings(cls, settings: VeritasSettings) -> "ReliabilityConfig":
        """Build the tracker configuration from the process settings."""
        return cls(
            history_size=settings.reliability_history_size,
            reliable_threshold=settings.reliable_threshold,
            unreliable_threshold=settings.unreliable_threshold,
        )
    
    def to_dict(self) -> Dict:
        return {
            "history_size": self.history_size,
            "reliable_threshold": self.reliable_threshold,
            "unreliable_threshold": self.unreliable_threshold,
            "trust_tiers": [list(t) for t in self.trust_tiers],
            "floor_weight": self.floor_weight,
            "unknown_source_weight": self.unknown_source_weight,
        }
