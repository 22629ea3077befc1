"""
Validation - On-Chain Validator.

Checks that exchange flows observed on-chain are plausible for the
24h trading volume reported by market data.

Checks:
- onchain_impossibility_check: very high volume with zero exchange flow
- market_to_chain_consistency: flow / volume ratio near the expected range

Confidence is the continuous consistency score: 100 inside the
expected flow ratio range, decaying linearly outside it.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from core.constants import AlertType, Domain, Severity
from core.exceptions import ImpossibilityError

from .base import BaseValidator, clamp_score
from .models import Discrepancy, SourceValue, ValidationResult


logger = logging.getLogger(__name__)

CONSISTENCY_CHECK = "market_to_chain_consistency"
FLOW_AVAILABILITY_CHECK = "onchain_flow_availability"

_VOLUME_KEYS = ("volume_24h", "volume24h", "total_volume", "totalVolume")

# Score lost per unit of flow ratio above the expected range
ABOVE_RANGE_DECAY = 50.0


def extract_volume_24h(market_data: Optional[Mapping[str, Any]]) -> Optional[float]:
    """First 24h volume figure found under the known key spellings."""
    if not market_data:
        return None
    for key in _VOLUME_KEYS:
        value = market_data.get(key)
        if value is not None:
            return float(value)
    return None


@dataclass(frozen=True)
class ExchangeFlows:
    """Exchange flow totals in USD over 24h."""
    inflow: float
    outflow: float
    cold_wallet_movements: float = 0.0
    
    @property
    def total(self) -> float:
        return self.inflow + self.outflow
    
    @property
    def net(self) -> float:
        """Positive when more leaves exchanges than arrives (accumulation)."""
        return self.outflow - self.inflow
    
    @classmethod
    def from_payload(cls, onchain_data: Optional[Mapping[str, Any]]) -> Optional["ExchangeFlows"]:
        """
        Read flows from exchange_inflow / exchange_outflow, or from
        whale_activity.summary.exchange_deposits / exchange_withdrawals.
        """
        if not onchain_data:
            return None
        
        inflow = onchain_data.get("exchange_inflow")
        outflow = onchain_data.get("exchange_outflow")
        cold = onchain_data.get("cold_wallet_movements", 0.0)
        
        if inflow is None and outflow is None:
            summary = (onchain_data.get("whale_activity") or {}).get("summary") or {}
            inflow = summary.get("exchange_deposits")
            outflow = summary.get("exchange_withdrawals")
            cold = summary.get("cold_wallet_movements", 0.0)
        
        if inflow is None and outflow is None:
            return None
        return cls(
            inflow=float(inflow or 0.0),
            outflow=float(outflow or 0.0),
            cold_wallet_movements=float(cold or 0.0),
        )


class OnChainValidator(BaseValidator):
    """Validator for market-to-chain consistency."""
    
    domain = Domain.ONCHAIN
    impossibility_check = "onchain_impossibility_check"
    impossibility_alert_type = AlertType.ONCHAIN_INCONSISTENCY
    
    async def validate(
        self,
        symbol: str,
        market_data: Optional[Mapping[str, Any]],
        onchain_data: Optional[Mapping[str, Any]],
    ) -> ValidationResult:
        """
        Validate on-chain flows against market volume.
        
        Args:
            symbol: Asset symbol
            market_data: Market payload carrying a 24h volume
            onchain_data: On-chain payload carrying exchange flows
        """
        return self.run(symbol, (market_data, onchain_data))
    
    def consistency_score(self, flow_ratio: float) -> float:
        """
        Score a flow / volume ratio.
        
        100 inside [optimal_min, optimal_max]; below the range the score
        falls linearly to 0 at ratio 0; above it, ABOVE_RANGE_DECAY points
        per unit of excess ratio.
        """
        low = self._thresholds.optimal_flow_ratio_min
        high = self._thresholds.optimal_flow_ratio_max
        if flow_ratio < low:
            return clamp_score(100.0 * flow_ratio / low)
        if flow_ratio > high:
            return clamp_score(100.0 - (flow_ratio - high) * ABOVE_RANGE_DECAY)
        return 100.0
    
    # =========================================================
    # CHECKS
    # =========================================================
    
    def _parse_payload(self, raw: Any):
        market_data, onchain_data = raw
        return extract_volume_24h(market_data), ExchangeFlows.from_payload(onchain_data)
    
    def _check_impossibility(self, symbol: str, payload) -> None:
        volume, flows = payload
        if volume is None or flows is None:
            return
        
        if volume > self._thresholds.onchain_volume_cutoff and flows.total == 0:
            raise ImpossibilityError(
                message=(
                    f"{symbol} reports ${volume / 1e9:.1f}B 24h volume with zero "
                    f"exchange inflow and outflow on-chain"
                ),
                check_name=CONSISTENCY_CHECK,
                affected_sources=["market_data", "onchain_data"],
                recommendation="Verify the on-chain indexer before trusting flow data",
                details={
                    "volume_24h": volume,
                    "total_flows": 0.0,
                    "cutoff": self._thresholds.onchain_volume_cutoff,
                },
            )
    
    def _check_consistency(self, symbol: str, payload) -> ValidationResult:
        volume, flows = payload
        
        if volume is None:
            return self._neutral_result(
                f"24h market volume unavailable for {symbol}, "
                f"market-to-chain consistency not checked",
                CONSISTENCY_CHECK,
                affected_sources=["market_data"],
            )
        if flows is None:
            return self._neutral_result(
                f"Exchange flow data unavailable for {symbol}, "
                f"market-to-chain consistency not checked",
                FLOW_AVAILABILITY_CHECK,
                affected_sources=["onchain_data"],
            )
        
        result = self._new_result()
        flow_ratio = flows.total / volume if volume > 0 else 0.0
        score = self.consistency_score(flow_ratio)
        
        result.consensus.update({
            "flow_ratio": flow_ratio,
            "net_flow": flows.net,
            "consistency_score": score,
        })
        
        discrepancy = Discrepancy(
            metric=CONSISTENCY_CHECK,
            sources=[SourceValue("market_volume_24h", volume), SourceValue("exchange_flows", flows.total)],
            variance=round(1.0 - score / 100.0, 4),
            threshold=round(1.0 - self._thresholds.min_consistency_score / 100.0, 4),
        )
        
        if discrepancy.exceeded:
            alert = self._alert(
                Severity.WARNING,
                f"Exchange flows for {symbol} are {flow_ratio:.1%} of 24h volume, outside "
                f"the expected {self._thresholds.optimal_flow_ratio_min:.0%}-"
                f"{self._thresholds.optimal_flow_ratio_max:.0%} range "
                f"(consistency {score:.0f})",
                ["market_data", "onchain_data"],
                recommendation="Cross-check on-chain flows with a second indexer",
                variance=discrepancy.variance,
            )
            result.alerts.append(alert)
            result.discrepancies.append(discrepancy)
            result.data_quality_summary.fail_check(CONSISTENCY_CHECK)
            self._notify(
                symbol,
                alert,
                AlertType.ONCHAIN_INCONSISTENCY,
                requires_human_review=False,
                threshold=discrepancy.threshold,
                details={"flow_ratio": flow_ratio, "volume_24h": volume, "total_flows": flows.total},
            )
        else:
            result.data_quality_summary.pass_check(CONSISTENCY_CHECK)
        
        self._add_flow_signal(symbol, flows, result)
        return self._finalize(result, score)
    
    def _add_flow_signal(self, symbol: str, flows: ExchangeFlows, result: ValidationResult) -> None:
        if flows.total == 0:
            return
        
        share = flows.net / flows.total
        if abs(share) <= self._thresholds.net_flow_signal_ratio:
            return
        
        if share > 0:
            message = f"Net exchange outflow for {symbol} ({share:.1%} of flows): accumulation"
        else:
            message = f"Net exchange inflow for {symbol} ({-share:.1%} of flows): distribution"
        result.alerts.append(self._alert(Severity.INFO, message, ["onchain_data"]))
