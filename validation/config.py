"""
Validation - Configuration.

============================================================
CONFIGURABLE THRESHOLDS
============================================================

Every numeric cutoff the validators apply. The defaults were
chosen empirically and are meant to be tuned:

- price: 1.5% spread warns, 5% is critical, 2% flags arbitrage
- 24h volume: 10% spread
- social sentiment: 30 points on the 0-100 scale
- on-chain: $20B/24h volume with zero exchange flow is impossible;
  flows of 10-30% of volume are the expected range
- news: 70% one-sided headlines against on-chain direction
- penalty: 15 points per warning or error alert

Configuration can be loaded from:
- Default values
- Environment variables
- YAML config file

============================================================
"""

import os
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict

from core.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


@dataclass
class ValidationThresholds:
    """Thresholds for all domain validators."""
    
    # Market
    price_threshold: float = 0.015
    price_critical_threshold: float = 0.05
    volume_threshold: float = 0.10
    arbitrage_spread: float = 0.02
    
    # Social
    sentiment_point_threshold: float = 30.0
    
    # On-chain
    onchain_volume_cutoff: float = 20_000_000_000.0
    optimal_flow_ratio_min: float = 0.10
    optimal_flow_ratio_max: float = 0.30
    min_consistency_score: float = 50.0
    net_flow_signal_ratio: float = 0.05
    
    # News
    news_divergence_percent: float = 70.0
    
    # Scoring
    alert_penalty: float = 15.0
    neutral_confidence: float = 50.0
    
    def __post_init__(self) -> None:
        """Validate threshold relationships."""
        if self.price_critical_threshold <= self.price_threshold:
            raise ConfigurationError(
                "price_critical_threshold",
                self.price_critical_threshold,
                "must be greater than price_threshold",
            )
        if self.optimal_flow_ratio_min >= self.optimal_flow_ratio_max:
            raise ConfigurationError(
                "optimal_flow_ratio_min",
                self.optimal_flow_ratio_min,
                "must be less than optimal_flow_ratio_max",
            )
        if not 0 <= self.neutral_confidence <= 100:
            raise ConfigurationError(
                "neutral_confidence", self.neutral_confidence, "must be within 0-100"
            )
    
    @classmethod
    def from_env(cls) -> "ValidationThresholds":
        """
        Load thresholds from environment variables.
        
        Each field maps to VERITAS_<FIELD_NAME_UPPER>, e.g.
        VERITAS_PRICE_THRESHOLD=0.02.
        """
        kwargs = {}
        for f in fields(cls):
            raw = os.getenv(f"VERITAS_{f.name.upper()}")
            if raw:
                try:
                    kwargs[f.name] = float(raw)
                except ValueError as e:
                    raise ConfigurationError(f.name, raw, "expected a number") from e
        return cls(**kwargs)
    
    @classmethod
    def from_yaml(cls, path: Path) -> "ValidationThresholds":
        """Load thresholds from a YAML mapping of field name to value."""
        import yaml
        
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown threshold keys in {path}: {sorted(unknown)}")
        
        return cls(**{k: float(v) for k, v in data.items() if k in known})
    
    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
