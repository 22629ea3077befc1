"""
Validation - Orchestrator.

============================================================
PURPOSE
============================================================

Runs the domain validators for one symbol in order
market -> social -> on-chain -> news, under a single overall
time budget.

- Domains without input are skipped
- The first fatal result halts the run
- A timeout keeps the results collected so far
- Progress is reported through an optional callback
- Every run ends with the aggregate confidence and a cross-domain
  data quality report

============================================================
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from core.clock import ClockProtocol, SystemClock
from core.constants import Domain
from core.settings import VeritasSettings
from source_reliability import SourceReliabilityTracker

from .confidence import ConfidenceBreakdown, calculate_confidence
from .market import MarketDataValidator
from .models import ValidationResult
from .news import NewsValidator
from .onchain import OnChainValidator
from .quality_report import DataQualityReport, generate_data_quality_report
from .social import SocialSentimentValidator


logger = logging.getLogger(__name__)


@dataclass
class AnalysisInput:
    """Already-fetched payloads for one symbol. Leave a field None to skip it."""
    market_quotes: Optional[Mapping[str, Any]] = None
    social_readings: Optional[Mapping[str, Any]] = None
    market_data: Optional[Mapping[str, Any]] = None
    onchain_data: Optional[Mapping[str, Any]] = None
    news_data: Any = None


@dataclass(frozen=True)
class ValidationProgress:
    domain: Domain
    completed: int
    total: int
    status: str  # running, complete, halted, timeout


@dataclass
class OrchestrationResult:
    symbol: str
    results: Dict[Domain, Optional[ValidationResult]] = field(default_factory=dict)
    confidence: Optional[ConfidenceBreakdown] = None
    halted: bool = False
    halt_reason: Optional[str] = None
    timed_out: bool = False
    duration_ms: float = 0.0
    started_at: Optional[datetime] = None
    data_quality: Optional[DataQualityReport] = None
    
    @property
    def completed_domains(self) -> List[Domain]:
        return [d for d, r in self.results.items() if r is not None]
    
    @property
    def is_valid(self) -> bool:
        return not self.halted and all(r.is_valid for r in self.results.values() if r)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "results": {d.value: r.to_dict() if r else None for d, r in self.results.items()},
            "confidence": self.confidence.to_dict() if self.confidence else None,
            "halted": self.halted,
            "halt_reason": self.halt_reason,
            "timed_out": self.timed_out,
            "completed_domains": [d.value for d in self.completed_domains],
            "duration_ms": round(self.duration_ms, 1),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "data_quality": self.data_quality.to_dict() if self.data_quality else None,
        }


ProgressCallback = Callable[[ValidationProgress], None]


class ValidationOrchestrator:
    """Sequential, fail-fast runner over the four domain validators."""
    
    def __init__(
        self,
        tracker: SourceReliabilityTracker,
        market: MarketDataValidator,
        social: SocialSentimentValidator,
        onchain: OnChainValidator,
        news: NewsValidator,
        settings: Optional[VeritasSettings] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._tracker = tracker
        self._market = market
        self._social = social
        self._onchain = onchain
        self._news = news
        self._timeout = (settings or VeritasSettings()).orchestration_timeout_seconds
        self._clock = clock or SystemClock()
    
    async def validate_all(
        self,
        symbol: str,
        data: AnalysisInput,
        on_progress: Optional[ProgressCallback] = None,
    ) -> OrchestrationResult:
        """
        Validate every domain that has input.
        
        Returns:
            OrchestrationResult with per-domain results (None for domains
            skipped, halted or timed out) and the aggregate confidence
        """
        start_time = time.time()
        outcome = OrchestrationResult(
            symbol=symbol,
            results={d: None for d in Domain},
            started_at=self._clock.now(),
        )
        steps = self._plan(symbol, data, outcome)
        
        logger.info(f"=== VALIDATION START: {symbol} | domains={len(steps)} ===")
        
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        
        for index, (domain, step) in enumerate(steps):
            self._report(on_progress, domain, index, len(steps), "running")
            remaining = deadline - loop.time()
            try:
                if remaining <= 0:
                    raise asyncio.TimeoutError()
                result = await asyncio.wait_for(step(), timeout=remaining)
            except asyncio.TimeoutError:
                outcome.timed_out = True
                logger.error(
                    f"=== VALIDATION TIMEOUT: {symbol} | domain={domain.value} "
                    f"(>{self._timeout}s) ==="
                )
                self._report(on_progress, domain, index, len(steps), "timeout")
                break
            
            outcome.results[domain] = result
            
            if result.has_fatal:
                outcome.halted = True
                outcome.halt_reason = result.alerts[0].message
                logger.error(
                    f"=== VALIDATION HALTED: {symbol} | domain={domain.value} | "
                    f"{outcome.halt_reason} ==="
                )
                self._report(on_progress, domain, index + 1, len(steps), "halted")
                break
            
            self._report(on_progress, domain, index + 1, len(steps), "complete")
        
        outcome.confidence = calculate_confidence(outcome.results, self._tracker)
        outcome.duration_ms = (time.time() - start_time) * 1000
        outcome.data_quality = generate_data_quality_report(
            outcome.results, outcome.duration_ms, generated_at=self._clock.now()
        )
        
        logger.info(
            f"=== VALIDATION COMPLETE: {symbol} | "
            f"confidence={outcome.confidence.overall_score} | "
            f"domains_completed={len(outcome.completed_domains)} ==="
        )
        return outcome
    
    def _plan(
        self,
        symbol: str,
        data: AnalysisInput,
        outcome: OrchestrationResult,
    ) -> List[Tuple[Domain, Callable[[], Awaitable[ValidationResult]]]]:
        steps: List[Tuple[Domain, Callable[[], Awaitable[ValidationResult]]]] = []
        
        if data.market_quotes is not None:
            steps.append((Domain.MARKET, lambda: self._market.validate(symbol, data.market_quotes)))
        if data.social_readings is not None:
            steps.append((Domain.SOCIAL, lambda: self._social.validate(symbol, data.social_readings)))
        if data.onchain_data is not None:
            steps.append((
                Domain.ONCHAIN,
                lambda: self._onchain.validate(
                    symbol, self._market_data_for(data, outcome), data.onchain_data
                ),
            ))
        if data.news_data is not None:
            steps.append((Domain.NEWS, lambda: self._news.validate(symbol, data.news_data, data.onchain_data)))
        return steps
    
    @staticmethod
    def _market_data_for(data: AnalysisInput, outcome: OrchestrationResult) -> Optional[Mapping[str, Any]]:
        """Explicit market data, else the consensus volume from the market step."""
        if data.market_data is not None:
            return data.market_data
        market = outcome.results.get(Domain.MARKET)
        if market is not None and "volume_24h" in market.consensus:
            return {"volume_24h": market.consensus["volume_24h"]}
        return None
    
    @staticmethod
    def _report(
        callback: Optional[ProgressCallback],
        domain: Domain,
        completed: int,
        total: int,
        status: str,
    ) -> None:
        if callback is None:
            return
        try:
            callback(ValidationProgress(domain, completed, total, status))
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")
