"""
Validation - Social Sentiment Validator.

Cross-checks sentiment reported by social sources (LunarCrush,
Reddit, ...). Sentiment is on a 0-100 scale where 50 is neutral.

Checks:
- social_impossibility_check: a sentiment distribution reported
  over zero mentions
- sentiment_consistency: sources within the point threshold

Confidence is 100 minus a fixed penalty per warning or error.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from core.constants import AlertType, Domain, Severity
from core.exceptions import ImpossibilityError
from source_reliability import ReliabilityOutcome

from .base import BaseValidator
from .models import Discrepancy, SourceValue, ValidationResult
from .sentiment import sentiment_score


logger = logging.getLogger(__name__)

SENTIMENT_CHECK = "sentiment_consistency"


@dataclass(frozen=True)
class SocialReading:
    """
    One social source's sentiment reading.
    
    sentiment_score is None when the source reported no score and
    no posts to derive one from.
    """
    mention_count: Optional[int] = None
    sentiment_score: Optional[float] = None
    distribution: Dict[str, float] = field(default_factory=dict)
    
    @property
    def has_distribution(self) -> bool:
        return any(value for value in self.distribution.values())
    
    @classmethod
    def from_payload(cls, raw: Any) -> Optional["SocialReading"]:
        """
        Accept a SocialReading or a mapping with any of:
        mention_count / mentions, sentiment_score / sentiment,
        distribution / sentiment_distribution, posts (titles or
        mappings with a title).
        """
        if raw is None or isinstance(raw, SocialReading):
            return raw
        if not isinstance(raw, Mapping):
            raise TypeError(f"Unsupported social payload type: {type(raw).__name__}")
        
        mentions = raw.get("mention_count", raw.get("mentions"))
        score = raw.get("sentiment_score", raw.get("sentiment"))
        distribution = raw.get("distribution", raw.get("sentiment_distribution")) or {}
        
        posts = raw.get("posts")
        if posts is not None:
            titles = [p["title"] if isinstance(p, Mapping) else str(p) for p in posts]
            if mentions is None:
                mentions = len(titles)
            if score is None and titles:
                score = sentiment_score(titles)
        
        return cls(
            mention_count=int(mentions) if mentions is not None else None,
            sentiment_score=float(score) if score is not None else None,
            distribution={str(k): float(v) for k, v in distribution.items()},
        )


class SocialSentimentValidator(BaseValidator):
    """Validator for social sentiment across sources."""
    
    domain = Domain.SOCIAL
    impossibility_check = "social_impossibility_check"
    impossibility_alert_type = AlertType.SOCIAL_IMPOSSIBILITY
    
    async def validate(self, symbol: str, readings: Mapping[str, Any]) -> ValidationResult:
        """
        Validate social sentiment for a symbol.
        
        Args:
            symbol: Asset symbol
            readings: Source name to reading (mapping or SocialReading), None if unavailable
        """
        return self.run(symbol, readings)
    
    def _parse_payload(self, raw: Any) -> Dict[str, Optional[SocialReading]]:
        if not isinstance(raw, Mapping):
            raise TypeError(f"Expected mapping of source to reading, got {type(raw).__name__}")
        return {str(name): SocialReading.from_payload(value) for name, value in raw.items()}
    
    def _check_impossibility(
        self,
        symbol: str,
        readings: Dict[str, Optional[SocialReading]],
    ) -> None:
        for name, reading in readings.items():
            if reading is None or reading.mention_count != 0:
                continue
            
            if reading.has_distribution:
                reported = reading.distribution
            elif not reading.distribution and reading.sentiment_score not in (None, 0):
                reported = {"sentiment_score": reading.sentiment_score}
            else:
                continue
            
            raise ImpossibilityError(
                message=(
                    f"{name} reports sentiment for {symbol} from zero mentions, "
                    f"which cannot happen"
                ),
                check_name=self.impossibility_check,
                affected_sources=[name],
                recommendation=f"Discard {name} social data and verify the source",
                details={"source": name, "mention_count": 0, "reported": reported},
            )
    
    def _check_consistency(
        self,
        symbol: str,
        readings: Dict[str, Optional[SocialReading]],
    ) -> ValidationResult:
        scores = {
            name: r.sentiment_score for name, r in readings.items()
            if r is not None and r.sentiment_score is not None
        }
        for name in readings:
            if name not in scores:
                self._tracker.update_reliability(name, ReliabilityOutcome.FAIL)
        
        if len(scores) < 2:
            if scores:
                (only,) = scores
                message = (
                    f"Social sentiment for {symbol} available from a single source "
                    f"({only}), cannot cross-check"
                )
                consensus = {"sentiment_score": scores[only]}
            else:
                message = f"No social sentiment sources available for {symbol}"
                consensus = {}
            return self._neutral_result(
                message,
                SENTIMENT_CHECK,
                affected_sources=list(readings),
                consensus=consensus,
            )
        
        result = self._new_result()
        consensus = self._weighted_average(scores)
        result.consensus["sentiment_score"] = consensus
        
        threshold = self._thresholds.sentiment_point_threshold
        difference = max(scores.values()) - min(scores.values())
        discrepancy = Discrepancy(
            metric="sentiment_score",
            sources=[SourceValue(n, v) for n, v in scores.items()],
            variance=difference,
            threshold=threshold,
        )
        
        for name, score in scores.items():
            if discrepancy.exceeded and abs(score - consensus) > threshold / 2:
                self._tracker.update_reliability(
                    name, ReliabilityOutcome.DEVIATION, abs(score - consensus)
                )
            else:
                self._tracker.update_reliability(name, ReliabilityOutcome.PASS)
        
        if discrepancy.exceeded:
            alert = self._alert(
                Severity.WARNING,
                f"Social sentiment for {symbol} differs by {difference:.0f} points across "
                f"sources (threshold {threshold:.0f})",
                list(scores),
                recommendation=(
                    f"Use the trust-weighted average sentiment of {consensus:.0f} "
                    f"and treat single-source sentiment with caution"
                ),
                variance=difference,
            )
            result.alerts.append(alert)
            result.discrepancies.append(discrepancy)
            result.data_quality_summary.fail_check(SENTIMENT_CHECK)
            self._notify(
                symbol,
                alert,
                AlertType.SOCIAL_DISCREPANCY,
                requires_human_review=False,
                threshold=threshold,
                details={"scores": dict(scores)},
            )
        else:
            result.data_quality_summary.pass_check(SENTIMENT_CHECK)
            result.alerts.append(
                self._alert(
                    Severity.INFO,
                    f"Social sentiment for {symbol} consistent across {len(scores)} sources "
                    f"({difference:.0f} point spread)",
                    list(scores),
                )
            )
        
        return self._finalize(result, self._penalty_score(result))
