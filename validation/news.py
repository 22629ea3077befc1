"""
Validation - News Validator.

Classifies recent headlines and checks that news sentiment does not
contradict what on-chain exchange flows show.

Checks:
- news_impossibility_check: a sentiment summary that counts
  classified articles while no articles are present
- news_onchain_correlation: > 70% bearish headlines during
  accumulation, or > 70% bullish during distribution
- news_source_diversity: headlines come from more than one outlet

Confidence is 100 minus a fixed penalty per warning or error.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from core.constants import AlertType, Domain, Severity
from core.exceptions import ImpossibilityError

from .base import BaseValidator
from .models import Discrepancy, SourceValue, ValidationResult
from .onchain import ExchangeFlows
from .sentiment import TextSentiment, classify_text


logger = logging.getLogger(__name__)

CORRELATION_CHECK = "news_onchain_correlation"
AVAILABILITY_CHECK = "news_data_availability"
DIVERSITY_CHECK = "news_source_diversity"

# Only the most recent headlines are classified
MAX_HEADLINES = 20


@dataclass(frozen=True)
class NewsArticle:
    title: str
    source: str = "unknown"
    sentiment: Optional[TextSentiment] = None
    
    @classmethod
    def from_payload(cls, raw: Any) -> "NewsArticle":
        if isinstance(raw, NewsArticle):
            return raw
        if isinstance(raw, str):
            return cls(title=raw)
        if not isinstance(raw, Mapping):
            raise TypeError(f"Unsupported article type: {type(raw).__name__}")
        
        label = raw.get("sentiment")
        return cls(
            title=str(raw["title"]),
            source=str(raw.get("source") or "unknown"),
            sentiment=TextSentiment(label) if label else None,
        )


@dataclass
class NewsPayload:
    articles: List[NewsArticle] = field(default_factory=list)
    summary_counts: Dict[str, int] = field(default_factory=dict)
    flows: Optional[ExchangeFlows] = None


@dataclass(frozen=True)
class HeadlineBreakdown:
    """Share of headlines per sentiment, in percent."""
    bullish: float
    bearish: float
    neutral: float
    total: int
    
    @classmethod
    def from_articles(cls, articles: Sequence[NewsArticle]) -> "HeadlineBreakdown":
        labels = [a.sentiment or classify_text(a.title) for a in articles]
        total = len(labels)
        if total == 0:
            return cls(0.0, 0.0, 0.0, 0)
        return cls(
            bullish=labels.count(TextSentiment.BULLISH) * 100.0 / total,
            bearish=labels.count(TextSentiment.BEARISH) * 100.0 / total,
            neutral=labels.count(TextSentiment.NEUTRAL) * 100.0 / total,
            total=total,
        )


class NewsValidator(BaseValidator):
    """Validator for news sentiment against on-chain flows."""
    
    domain = Domain.NEWS
    impossibility_check = "news_impossibility_check"
    impossibility_alert_type = AlertType.NEWS_DIVERGENCE
    
    async def validate(
        self,
        symbol: str,
        news_data: Any,
        onchain_data: Optional[Mapping[str, Any]] = None,
    ) -> ValidationResult:
        """
        Validate news for a symbol.
        
        Args:
            symbol: Asset symbol
            news_data: List of articles, or a mapping with "articles" and
                optional "summary" counts (bullish / bearish / neutral)
            onchain_data: On-chain payload carrying exchange flows
        """
        return self.run(symbol, (news_data, onchain_data))
    
    # =========================================================
    # CHECKS
    # =========================================================
    
    def _parse_payload(self, raw: Any) -> NewsPayload:
        news_data, onchain_data = raw
        
        summary: Mapping[str, Any] = {}
        if news_data is None:
            articles_raw: Sequence[Any] = []
        elif isinstance(news_data, Mapping):
            articles_raw = news_data.get("articles") or []
            summary = news_data.get("summary") or {}
        else:
            articles_raw = news_data
        
        return NewsPayload(
            articles=[NewsArticle.from_payload(a) for a in articles_raw][:MAX_HEADLINES],
            summary_counts={
                key: int(summary.get(key) or 0) for key in ("bullish", "bearish", "neutral")
            },
            flows=ExchangeFlows.from_payload(onchain_data),
        )
    
    def _check_impossibility(self, symbol: str, payload: NewsPayload) -> None:
        classified = sum(payload.summary_counts.values())
        if not payload.articles and classified > 0:
            raise ImpossibilityError(
                message=(
                    f"News summary for {symbol} classifies {classified} articles "
                    f"but no articles were returned"
                ),
                check_name=self.impossibility_check,
                affected_sources=["news_data"],
                recommendation="Discard the news summary and refetch articles",
                details={"summary_counts": dict(payload.summary_counts)},
            )
    
    def _check_consistency(self, symbol: str, payload: NewsPayload) -> ValidationResult:
        if not payload.articles:
            return self._neutral_result(
                f"No news articles available for {symbol}",
                AVAILABILITY_CHECK,
                affected_sources=["news_data"],
            )
        
        breakdown = HeadlineBreakdown.from_articles(payload.articles)
        consensus = {
            "bullish_percent": breakdown.bullish,
            "bearish_percent": breakdown.bearish,
            "neutral_percent": breakdown.neutral,
        }
        
        if payload.flows is None or payload.flows.total == 0:
            return self._neutral_result(
                f"On-chain flow data unavailable for {symbol}, news sentiment "
                f"not correlated with exchange flows",
                CORRELATION_CHECK,
                affected_sources=["onchain_data"],
                consensus=consensus,
            )
        
        result = self._new_result()
        result.data_quality_summary.pass_check(AVAILABILITY_CHECK)
        result.consensus.update(consensus)
        
        self._check_correlation(symbol, breakdown, payload.flows, result)
        self._check_diversity(symbol, payload.articles, result)
        
        return self._finalize(result, self._penalty_score(result))
    
    def _check_correlation(
        self,
        symbol: str,
        breakdown: HeadlineBreakdown,
        flows: ExchangeFlows,
        result: ValidationResult,
    ) -> None:
        threshold = self._thresholds.news_divergence_percent
        share = flows.net / flows.total
        accumulating = share > self._thresholds.net_flow_signal_ratio
        distributing = share < -self._thresholds.net_flow_signal_ratio
        
        if breakdown.bearish > threshold and accumulating:
            dominant, percent, flow_state = "bearish", breakdown.bearish, "accumulation"
        elif breakdown.bullish > threshold and distributing:
            dominant, percent, flow_state = "bullish", breakdown.bullish, "distribution"
        else:
            result.data_quality_summary.pass_check(CORRELATION_CHECK)
            return
        
        discrepancy = Discrepancy(
            metric=CORRELATION_CHECK,
            sources=[
                SourceValue(f"news_{dominant}_percent", percent),
                SourceValue("onchain_net_flow", flows.net),
            ],
            variance=percent,
            threshold=threshold,
        )
        alert = self._alert(
            Severity.WARNING,
            f"{percent:.0f}% of {symbol} headlines are {dominant} while on-chain "
            f"flows show {flow_state}",
            ["news_data", "onchain_data"],
            recommendation="Weight on-chain flows over headline sentiment until they converge",
            variance=percent,
        )
        result.alerts.append(alert)
        result.discrepancies.append(discrepancy)
        result.data_quality_summary.fail_check(CORRELATION_CHECK)
        self._notify(
            symbol,
            alert,
            AlertType.NEWS_DIVERGENCE,
            requires_human_review=False,
            threshold=threshold,
            details={"headline_sentiment": dominant, "percent": percent, "net_flow": flows.net},
        )
    
    def _check_diversity(
        self,
        symbol: str,
        articles: Sequence[NewsArticle],
        result: ValidationResult,
    ) -> None:
        outlets = {a.source for a in articles if a.source != "unknown"}
        if len(outlets) >= 2 or len(articles) < 2:
            result.data_quality_summary.pass_check(DIVERSITY_CHECK)
            return
        
        result.data_quality_summary.fail_check(DIVERSITY_CHECK)
        result.alerts.append(
            self._alert(
                Severity.INFO,
                f"All {len(articles)} {symbol} headlines come from a single outlet",
                sorted(outlets) or ["news_data"],
            )
        )
