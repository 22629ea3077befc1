"""
Validation - Market Data Validator.

Cross-checks price and 24h volume reported by several market data
sources (CoinGecko, CoinMarketCap, Kraken, ...).

Checks:
- market_impossibility_check: non-positive price or negative volume
- market_data_availability: at least one source answered
- price_consistency: spread (max - min) / min within threshold
- volume_consistency: 24h volume spread within threshold

Confidence is continuous: the share of sources that answered, minus
a capped penalty proportional to the price and volume spreads.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from core.constants import AlertType, Domain, Severity
from core.exceptions import ImpossibilityError
from source_reliability import ReliabilityOutcome, SourceReliabilityTracker

from .base import AlertSink, BaseValidator, relative_spread
from .config import ValidationThresholds
from .models import Discrepancy, SourceValue, ValidationResult
from .sources import SourceFetcher, fetch_all


logger = logging.getLogger(__name__)

PRICE_CHECK = "price_consistency"
VOLUME_CHECK = "volume_consistency"
AVAILABILITY_CHECK = "market_data_availability"

_VOLUME_KEYS = ("volume_24h", "volume24h", "total_volume", "totalVolume", "volume")

# Score penalty caps
MAX_PRICE_PENALTY = 30.0
MAX_VOLUME_PENALTY = 20.0

DEFAULT_FETCH_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class MarketQuote:
    """One source's market reading."""
    price: float
    volume_24h: Optional[float] = None
    
    @classmethod
    def from_payload(cls, raw: Any) -> Optional["MarketQuote"]:
        """Accept a MarketQuote, a mapping with price / volume keys, or None."""
        if raw is None or isinstance(raw, MarketQuote):
            return raw
        if not isinstance(raw, Mapping):
            raise TypeError(f"Unsupported market payload type: {type(raw).__name__}")
        
        price = raw.get("price")
        if price is None:
            return None
        volume = next((raw[k] for k in _VOLUME_KEYS if raw.get(k) is not None), None)
        return cls(
            price=float(price),
            volume_24h=float(volume) if volume is not None else None,
        )


class MarketDataValidator(BaseValidator):
    """
    Validator for market data across exchanges and aggregators.
    
    A source whose payload is None (failed fetch) is recorded as a
    reliability failure; answering sources are recorded as pass or
    deviation depending on their distance from the trust-weighted
    consensus price.
    """
    
    domain = Domain.MARKET
    impossibility_check = "market_impossibility_check"
    
    def __init__(
        self,
        tracker: Optional[SourceReliabilityTracker] = None,
        alert_sink: Optional[AlertSink] = None,
        thresholds: Optional[ValidationThresholds] = None,
        fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(tracker, alert_sink, thresholds)
        if fetch_timeout_seconds <= 0:
            raise ValueError("fetch_timeout_seconds must be positive")
        self._fetch_timeout = fetch_timeout_seconds
    
    @property
    def fetch_timeout(self) -> float:
        return self._fetch_timeout
    
    async def validate(self, symbol: str, quotes: Mapping[str, Any]) -> ValidationResult:
        """
        Validate market readings for a symbol.
        
        Args:
            symbol: Asset symbol, e.g. "BTC"
            quotes: Source name to quote (mapping or MarketQuote), None if the fetch failed
        """
        return self.run(symbol, quotes)
    
    async def validate_live(
        self,
        symbol: str,
        fetchers: Mapping[str, SourceFetcher],
        timeout_seconds: Optional[float] = None,
    ) -> ValidationResult:
        """
        Fetch every source concurrently, then validate whatever answered.
        
        Each fetch gets timeout_seconds, or the validator's fetch_timeout.
        """
        if timeout_seconds is None:
            timeout_seconds = self._fetch_timeout
        quotes = await fetch_all(fetchers, timeout_seconds)
        return self.run(symbol, quotes)
    
    # =========================================================
    # CHECKS
    # =========================================================
    
    def _parse_payload(self, raw: Any) -> Dict[str, Optional[MarketQuote]]:
        if not isinstance(raw, Mapping):
            raise TypeError(f"Expected mapping of source to quote, got {type(raw).__name__}")
        return {str(name): MarketQuote.from_payload(value) for name, value in raw.items()}
    
    def _check_impossibility(
        self,
        symbol: str,
        quotes: Dict[str, Optional[MarketQuote]],
    ) -> None:
        present = {name: q for name, q in quotes.items() if q is not None}
        
        bad_price = [name for name, q in present.items() if q.price <= 0]
        if bad_price:
            raise ImpossibilityError(
                message=f"Non-positive price reported for {symbol} by {', '.join(bad_price)}",
                check_name=self.impossibility_check,
                affected_sources=bad_price,
                details={"prices": {n: present[n].price for n in bad_price}},
            )
        
        bad_volume = [
            name for name, q in present.items()
            if q.volume_24h is not None and q.volume_24h < 0
        ]
        if bad_volume:
            raise ImpossibilityError(
                message=f"Negative 24h volume reported for {symbol} by {', '.join(bad_volume)}",
                check_name=self.impossibility_check,
                affected_sources=bad_volume,
                details={"volumes": {n: present[n].volume_24h for n in bad_volume}},
            )
        
        if not present:
            for name in quotes:
                self._tracker.update_reliability(name, ReliabilityOutcome.FAIL)
            raise ImpossibilityError(
                message=f"All market data sources failed for {symbol}",
                check_name=AVAILABILITY_CHECK,
                affected_sources=list(quotes),
                recommendation="Check API keys and source status before using market data",
            )
    
    def _check_consistency(
        self,
        symbol: str,
        quotes: Dict[str, Optional[MarketQuote]],
    ) -> ValidationResult:
        present = {name: q for name, q in quotes.items() if q is not None}
        for name in quotes:
            if quotes[name] is None:
                self._tracker.update_reliability(name, ReliabilityOutcome.FAIL)
        
        prices = {name: q.price for name, q in present.items()}
        
        if len(prices) < 2:
            (only,) = prices
            self._tracker.update_reliability(only, ReliabilityOutcome.PASS)
            return self._neutral_result(
                f"Only one market source available for {symbol} ({only}), "
                f"prices cannot be cross-checked",
                PRICE_CHECK,
                affected_sources=list(quotes),
                consensus={"price": prices[only]},
            )
        
        result = self._new_result()
        result.data_quality_summary.pass_check(AVAILABILITY_CHECK)
        
        price_spread = self._check_prices(symbol, prices, result)
        volume_spread = self._check_volumes(symbol, present, result)
        
        success_rate = len(present) * 100.0 / len(quotes)
        score = (
            success_rate
            - min(price_spread * 100, MAX_PRICE_PENALTY)
            - min(volume_spread * 50, MAX_VOLUME_PENALTY)
        )
        return self._finalize(result, score)
    
    def _check_prices(
        self,
        symbol: str,
        prices: Dict[str, float],
        result: ValidationResult,
    ) -> float:
        spread = relative_spread(prices.values())
        consensus = self._weighted_average(prices)
        result.consensus["price"] = consensus
        
        # Reliability: each source against the trust-weighted consensus
        for name, price in prices.items():
            deviation = abs(price - consensus) / consensus
            if deviation > self._thresholds.price_threshold:
                self._tracker.update_reliability(name, ReliabilityOutcome.DEVIATION, deviation)
            else:
                self._tracker.update_reliability(name, ReliabilityOutcome.PASS)
        
        discrepancy = Discrepancy(
            metric="price",
            sources=[SourceValue(n, v) for n, v in prices.items()],
            variance=spread,
            threshold=self._thresholds.price_threshold,
        )
        
        if discrepancy.exceeded:
            critical = spread > self._thresholds.price_critical_threshold
            alert = self._alert(
                Severity.ERROR if critical else Severity.WARNING,
                f"Price discrepancy of {spread:.2%} across {len(prices)} sources for {symbol} "
                f"(threshold {self._thresholds.price_threshold:.2%})",
                list(prices),
                recommendation=(
                    f"Use the trust-weighted average price of {consensus:,.2f} "
                    f"instead of any single source"
                ),
                variance=spread,
            )
            result.alerts.append(alert)
            result.discrepancies.append(discrepancy)
            result.data_quality_summary.fail_check(PRICE_CHECK)
            self._notify(
                symbol,
                alert,
                AlertType.MARKET_DISCREPANCY,
                requires_human_review=critical,
                threshold=self._thresholds.price_threshold,
                details={"prices": dict(prices), "weighted_average": consensus},
            )
        else:
            result.data_quality_summary.pass_check(PRICE_CHECK)
        
        if spread > self._thresholds.arbitrage_spread:
            low = min(prices, key=prices.get)
            high = max(prices, key=prices.get)
            result.alerts.append(
                self._alert(
                    Severity.INFO,
                    f"Arbitrage signal for {symbol}: {low} at {prices[low]:,.2f} vs "
                    f"{high} at {prices[high]:,.2f} ({spread:.2%} spread)",
                    [low, high],
                    recommendation="Treat the gap as a market opportunity, not a data defect",
                    variance=spread,
                )
            )
        
        return spread
    
    def _check_volumes(
        self,
        symbol: str,
        present: Dict[str, MarketQuote],
        result: ValidationResult,
    ) -> float:
        volumes = {
            name: q.volume_24h for name, q in present.items() if q.volume_24h is not None
        }
        if len(volumes) < 2:
            result.alerts.append(
                self._alert(
                    Severity.INFO,
                    f"24h volume for {symbol} reported by {len(volumes)} source(s), "
                    f"volume not cross-checked",
                    list(volumes),
                )
            )
            return 0.0
        
        spread = relative_spread(volumes.values())
        consensus = self._weighted_average(volumes)
        result.consensus["volume_24h"] = consensus
        
        discrepancy = Discrepancy(
            metric="volume_24h",
            sources=[SourceValue(n, v) for n, v in volumes.items()],
            variance=spread,
            threshold=self._thresholds.volume_threshold,
        )
        
        if not discrepancy.exceeded:
            result.data_quality_summary.pass_check(VOLUME_CHECK)
            return spread
        
        misaligned = [
            name for name, volume in volumes.items()
            if consensus > 0 and abs(volume - consensus) / consensus > self._thresholds.volume_threshold
        ] or list(volumes)
        
        alert = self._alert(
            Severity.WARNING,
            f"24h volume discrepancy of {spread:.2%} across {len(volumes)} sources for {symbol} "
            f"(threshold {self._thresholds.volume_threshold:.2%})",
            list(volumes),
            recommendation=(
                f"Misaligned sources: {', '.join(misaligned)}. Use the trust-weighted "
                f"average volume of {consensus:,.0f}"
            ),
            variance=spread,
        )
        result.alerts.append(alert)
        result.discrepancies.append(discrepancy)
        result.data_quality_summary.fail_check(VOLUME_CHECK)
        self._notify(
            symbol,
            alert,
            AlertType.MARKET_DISCREPANCY,
            requires_human_review=False,
            threshold=self._thresholds.volume_threshold,
            details={"volumes": dict(volumes), "misaligned_sources": misaligned},
        )
        return spread
